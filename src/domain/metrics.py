"""Per-trade metrics: average prices, P&L, holding period and market session."""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from datetime import datetime, timedelta
import pytz
import pandas as pd

from src.config import REPORT_TIMEZONE
from src.domain.models import (
    HoldingPeriod,
    MarketSession,
    OrderAllocation,
    ProcessedTrade,
    TradeSide,
    TradeStatus,
)
from src.domain.positions import allocated_quantity, allocation_map

# (quantity, price) of one fill attributed to a trade
Fill = Tuple[int, float]

MARKET_OPEN_MINUTES = 9 * 60 + 30
MARKET_CLOSE_MINUTES = 16 * 60
INTRADAY_MAX = timedelta(hours=24)


def _as_utc(ts: datetime) -> datetime:
    """Stored timestamps are naive UTC; aware ones are converted."""
    if ts.tzinfo is None:
        return pytz.UTC.localize(ts)
    return ts.astimezone(pytz.UTC)


class MetricsCalculator:
    """Calculate trade-level metrics from the orders that make up a trade."""

    @staticmethod
    def weighted_average_price(fills: Iterable[Fill]) -> Optional[float]:
        """Σ(quantity × price) / Σ(quantity); None when there is no quantity."""
        total_qty = 0
        weighted = 0.0
        for qty, price in fills:
            total_qty += qty
            weighted += qty * price
        if total_qty <= 0:
            return None
        return weighted / total_qty

    @staticmethod
    def split_fills(
        orders: Iterable,
        side: TradeSide,
        allocations: Optional[Iterable[OrderAllocation]] = None,
    ) -> Tuple[List[Fill], List[Fill]]:
        """
        Separate a trade's orders into entry and exit fills.

        Split orders count with their allocated quantity, every other order
        with its full quantity. Orders without a price are ignored.
        """
        allocated = allocation_map(allocations)
        entry_fills: List[Fill] = []
        exit_fills: List[Fill] = []

        for order in orders:
            if order.price is None:
                continue
            qty = allocated.get(order.id, order.quantity)
            fill = (qty, float(order.price))
            if order.side == side.entry_order_side:
                entry_fills.append(fill)
            elif order.side == side.exit_order_side:
                exit_fills.append(fill)

        return entry_fills, exit_fills

    @staticmethod
    def open_close_quantities(
        orders: Iterable,
        side: TradeSide,
        allocations: Optional[Iterable[OrderAllocation]] = None,
    ) -> Tuple[int, int]:
        entry_fills, exit_fills = MetricsCalculator.split_fills(orders, side, allocations)
        return sum(q for q, _ in entry_fills), sum(q for q, _ in exit_fills)

    @staticmethod
    def avg_exit_price(
        orders: Iterable,
        side: TradeSide,
        allocations: Optional[Iterable[OrderAllocation]] = None,
    ) -> Optional[float]:
        _, exit_fills = MetricsCalculator.split_fills(orders, side, allocations)
        return MetricsCalculator.weighted_average_price(exit_fills)

    @staticmethod
    def remaining_quantity(
        orders: Iterable,
        side: TradeSide,
        allocations: Optional[Iterable[OrderAllocation]] = None,
    ) -> int:
        """Entry quantity not yet offset by exits."""
        opened, closed = MetricsCalculator.open_close_quantities(orders, side, allocations)
        return opened - closed

    @staticmethod
    def total_quantity(
        orders: Iterable,
        allocations: Optional[Iterable[OrderAllocation]] = None,
    ) -> int:
        """Quantity across all orders of a trade, using allocations for split orders."""
        allocations = list(allocations or [])
        return sum(allocated_quantity(order, allocations) for order in orders)

    @staticmethod
    def pnl(side: TradeSide, avg_entry: float, avg_exit: float, quantity: int) -> float:
        if side == TradeSide.LONG:
            return round((avg_exit - avg_entry) * quantity, 2)
        return round((avg_entry - avg_exit) * quantity, 2)

    @staticmethod
    def time_in_trade(
        open_time: datetime,
        close_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Seconds between open and close (or now, for open trades)."""
        end = close_time or now or datetime.now(pytz.UTC)
        return int((_as_utc(end) - _as_utc(open_time)).total_seconds())

    @staticmethod
    def market_session(open_time: datetime, report_timezone: str = REPORT_TIMEZONE) -> MarketSession:
        tz = pytz.timezone(report_timezone)
        local = _as_utc(open_time).astimezone(tz)
        minutes = local.hour * 60 + local.minute

        if minutes < MARKET_OPEN_MINUTES:
            return MarketSession.PRE_MARKET
        if minutes < MARKET_CLOSE_MINUTES:
            return MarketSession.REGULAR
        return MarketSession.AFTER_HOURS

    @staticmethod
    def holding_period(open_time: datetime, close_time: Optional[datetime] = None) -> HoldingPeriod:
        if close_time is None:
            return HoldingPeriod.INTRADAY  # Default for open trades
        if _as_utc(close_time) - _as_utc(open_time) <= INTRADAY_MAX:
            return HoldingPeriod.INTRADAY
        return HoldingPeriod.SWING

    @staticmethod
    def summarize_trades(trades: Sequence[ProcessedTrade]) -> Dict:
        """Counts and P&L totals for the trades produced by one run."""
        completed = [t for t in trades if t.status == TradeStatus.CLOSED]
        open_trades = [t for t in trades if t.status == TradeStatus.OPEN]
        winners = len([t for t in completed if t.pnl > 0])
        losers = len([t for t in completed if t.pnl < 0])
        total_pnl = sum(t.pnl for t in completed)

        return {
            "total_trades": len(trades),
            "completed_trades": len(completed),
            "open_trades": len(open_trades),
            "total_pnl": round(total_pnl, 2),
            "winners": winners,
            "losers": losers,
            "win_rate": round(winners / len(completed) * 100, 1) if completed else 0.0,
        }

    @staticmethod
    def trades_frame(trades: Sequence[ProcessedTrade]) -> pd.DataFrame:
        """Tabular view of processed trades, one row per trade."""
        columns = [
            "id", "symbol", "side", "status", "open_time", "close_time",
            "open_quantity", "close_quantity", "avg_entry_price", "avg_exit_price",
            "pnl", "orders",
        ]
        if not trades:
            return pd.DataFrame(columns=columns)

        rows = [
            {
                "id": t.id,
                "symbol": t.symbol,
                "side": t.side.value,
                "status": t.status.value,
                "open_time": t.open_time,
                "close_time": t.close_time,
                "open_quantity": t.open_quantity,
                "close_quantity": t.close_quantity,
                "avg_entry_price": t.avg_entry_price,
                "avg_exit_price": t.avg_exit_price,
                "pnl": t.pnl,
                "orders": len(t.orders_in_trade),
            }
            for t in trades
        ]
        return pd.DataFrame(rows, columns=columns).sort_values(["open_time", "symbol"])
