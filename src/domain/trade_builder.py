"""
Trade construction from order fills.
Implements position accumulation, partial closes, full closes and reversals,
splitting an order between two trades when it closes one position and opens
the opposite one.
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime

from sqlmodel import Session

from src.config import REPORT_TIMEZONE
from src.db.repositories import OrdersRepository, TradesRepository
from src.domain import ports
from src.domain.metrics import MetricsCalculator
from src.domain.models import (
    OpenPosition,
    OrderAllocation,
    ProcessedTrade,
    TradeSide,
    TradeStatus,
)
from src.domain.positions import PositionTracker

logger = logging.getLogger(__name__)


class TradeBuilder:
    """
    Builds trades for one user from their unprocessed orders.

    A builder instance owns its position map for the duration of a run; all
    repository reads happen before matching and all writes in persist_trades().
    """

    def __init__(
        self,
        orders_repo: ports.OrdersRepository,
        trades_repo: ports.TradesRepository,
        report_timezone: str = REPORT_TIMEZONE,
    ):
        self.orders_repo = orders_repo
        self.trades_repo = trades_repo
        self.report_timezone = report_timezone
        self.positions = PositionTracker()
        self.new_trades: List[ProcessedTrade] = []
        self._orders: Dict[str, Any] = {}

    def process_user_orders(self, user_id: str) -> List[ProcessedTrade]:
        """
        Match every unprocessed order of `user_id` into trades.

        Returns trades closed during the run plus one OPEN trade per position
        left open (resumed positions untouched by this run are not repeated).
        """
        self.positions.clear()
        self.new_trades = []
        self._orders = {}

        self.load_existing_open_positions(user_id)

        orders = self.orders_repo.get_unprocessed_orders(user_id)
        logger.info("Processing %d unprocessed orders for user %s", len(orders), user_id)

        for order in orders:
            self.process_order(order)

        self._create_trades_for_open_positions()

        logger.info(
            "Built %d trades for user %s (%d positions still open)",
            len(self.new_trades), user_id, len(self.positions),
        )
        return self.new_trades

    def load_existing_open_positions(self, user_id: str) -> None:
        open_trades = self.trades_repo.get_all_open_trades(user_id)
        loaded = self.positions.load_existing_open_positions(open_trades)

        # Orders of resumed trades are needed later for exit prices and quantities
        order_ids = [oid for position in loaded for oid in position.order_ids]
        if order_ids:
            for order in self.orders_repo.get_orders_by_ids(order_ids):
                self._orders[order.id] = order

    def process_order(self, order) -> None:
        if not order.executed_at or not order.price:
            logger.warning("Order %s missing execution time or price, skipping", order.id)
            return

        if order.id in self._orders:
            logger.warning("Order %s already belongs to an open trade, skipping", order.id)
            return
        self._orders[order.id] = order

        trade_side = TradeSide.for_order_side(order.side)
        price = float(order.price)
        position = self.positions.get(order.symbol)

        if position is None:
            self.positions.open_position(
                order.symbol, trade_side, order.quantity, price, order.executed_at, order.id
            )
        elif position.side == trade_side:
            self.positions.add_to_position(position, order.quantity, price, order.id)
        else:
            self._handle_opposite_order(position, order, price)

    def _handle_opposite_order(self, position: OpenPosition, order, price: float) -> None:
        """Close or reverse `position` with an order on the other side."""
        quantity = order.quantity
        closing_quantity = min(quantity, position.open_quantity)
        remaining_order_quantity = quantity - closing_quantity
        remaining_position_quantity = position.open_quantity - closing_quantity

        avg_entry_price = position.avg_entry_price

        # Only the closing portion of a split order belongs to this position
        closing_allocation = None
        if closing_quantity < quantity:
            closing_allocation = OrderAllocation(order.id, closing_quantity, quantity, price)
        self.positions.record_closing_order(position, order.id, closing_allocation)

        if remaining_position_quantity == 0:
            trade = self._build_trade(
                position, TradeStatus.CLOSED, avg_entry_price, close_time=order.executed_at
            )
            logger.debug(
                "Closed %s %s: %d @ %.4f -> %.4f, pnl %.2f",
                trade.side.value, trade.symbol, trade.close_quantity,
                trade.avg_entry_price, trade.avg_exit_price, trade.pnl,
            )
            self.new_trades.append(trade)
            self.positions.remove(position.symbol)
        else:
            self.positions.reduce_position(position, closing_quantity)

        if remaining_order_quantity > 0:
            # Order over-fills the close: the rest opens the opposite position
            self.positions.open_position(
                position.symbol,
                position.side.opposite,
                remaining_order_quantity,
                price,
                order.executed_at,
                order.id,
                allocation=OrderAllocation(order.id, remaining_order_quantity, quantity, price),
            )
            logger.debug(
                "Reversed %s to %s %d", position.symbol,
                position.side.opposite.value, remaining_order_quantity,
            )

    def _create_trades_for_open_positions(self) -> None:
        for position in self.positions:
            if position.is_resumed and not position.has_new_orders:
                # Already persisted as an open trade; nothing changed this run
                continue
            trade = self._build_trade(position, TradeStatus.OPEN, position.avg_entry_price)
            self.new_trades.append(trade)

    def _build_trade(
        self,
        position: OpenPosition,
        status: TradeStatus,
        avg_entry_price: float,
        close_time: Optional[datetime] = None,
    ) -> ProcessedTrade:
        orders = self._orders_for(position.order_ids)
        entry_fills, exit_fills = MetricsCalculator.split_fills(
            orders, position.side, position.order_allocations
        )
        open_quantity = sum(q for q, _ in entry_fills)
        close_quantity = sum(q for q, _ in exit_fills)
        avg_exit_price = MetricsCalculator.weighted_average_price(exit_fills)

        pnl = 0.0
        if status == TradeStatus.CLOSED and avg_exit_price is not None:
            pnl = MetricsCalculator.pnl(position.side, avg_entry_price, avg_exit_price, close_quantity)

        return ProcessedTrade(
            symbol=position.symbol,
            side=position.side,
            status=status,
            open_time=position.open_time,
            close_time=close_time if status == TradeStatus.CLOSED else None,
            avg_entry_price=avg_entry_price,
            avg_exit_price=avg_exit_price,
            open_quantity=open_quantity,
            close_quantity=close_quantity,
            pnl=pnl,
            orders_in_trade=list(position.order_ids),
            order_allocations=list(position.order_allocations),
            existing_trade_id=position.existing_trade_id,
        )

    def _orders_for(self, order_ids: List[str]) -> List[Any]:
        missing = [oid for oid in order_ids if oid not in self._orders]
        if missing:
            logger.warning("Orders %s not found, excluded from trade metrics", missing)
        return [self._orders[oid] for oid in order_ids if oid in self._orders]

    def trade_data(self, user_id: str, trade: ProcessedTrade) -> Dict[str, Any]:
        """Column values for persisting `trade`."""
        orders = self._orders_for(trade.orders_in_trade)
        remaining_quantity = 0
        if trade.status == TradeStatus.OPEN:
            remaining_quantity = MetricsCalculator.remaining_quantity(
                orders, trade.side, trade.order_allocations
            )

        cost_basis = None
        if trade.avg_entry_price is not None and trade.open_quantity:
            cost_basis = trade.avg_entry_price * trade.open_quantity
        proceeds = None
        if trade.avg_exit_price is not None and trade.close_quantity:
            proceeds = trade.avg_exit_price * trade.close_quantity

        return {
            "user_id": user_id,
            "symbol": trade.symbol,
            "side": trade.side.value,
            "status": trade.status.value,
            "open_time": trade.open_time,
            "close_time": trade.close_time,
            "avg_entry_price": trade.avg_entry_price,
            "avg_exit_price": trade.avg_exit_price,
            "open_quantity": trade.open_quantity,
            "close_quantity": trade.close_quantity,
            "pnl": round(trade.pnl, 2),
            "orders_in_trade": list(trade.orders_in_trade),
            "order_allocations": [a.to_dict() for a in trade.order_allocations],
            "orders_count": len(trade.orders_in_trade),
            "executions": len(trade.orders_in_trade),
            "quantity": MetricsCalculator.total_quantity(orders, trade.order_allocations),
            "time_in_trade": MetricsCalculator.time_in_trade(trade.open_time, trade.close_time),
            "remaining_quantity": remaining_quantity,
            "market_session": MetricsCalculator.market_session(
                trade.open_time, self.report_timezone
            ).value,
            "holding_period": MetricsCalculator.holding_period(
                trade.open_time, trade.close_time
            ).value,
            "cost_basis": cost_basis,
            "proceeds": proceeds,
        }

    def persist_trades(self, user_id: str) -> None:
        """
        Save every trade built by the last run and link its orders.

        Trades resumed from an existing open trade update that row; all others
        are inserted. Errors propagate: a failed run must be retried whole.
        """
        for trade in self.new_trades:
            data = self.trade_data(user_id, trade)

            if trade.existing_trade_id:
                saved = self.trades_repo.update_trade(trade.existing_trade_id, data)
            else:
                saved = self.trades_repo.save_trade(data)
            trade.id = saved.id

            self.orders_repo.update_orders_with_trade_id(
                trade.orders_in_trade, saved.id, trade.order_allocations
            )

        logger.info("Persisted %d trades for user %s", len(self.new_trades), user_id)


def process_user_orders(
    session: Session,
    user_id: str,
    report_timezone: str = REPORT_TIMEZONE,
) -> List[ProcessedTrade]:
    """Build and persist trades for a user's unprocessed orders, then commit."""
    builder = TradeBuilder(
        orders_repo=OrdersRepository(session),
        trades_repo=TradesRepository(session),
        report_timezone=report_timezone,
    )
    trades = builder.process_user_orders(user_id)
    builder.persist_trades(user_id)
    session.commit()
    return trades


def recalculate_user_trades(
    session: Session,
    user_id: str,
    report_timezone: str = REPORT_TIMEZONE,
) -> List[ProcessedTrade]:
    """Delete the user's calculated trades and rebuild them from all orders."""
    removed = TradesRepository(session).reset_trades_for_user(user_id)
    logger.info("Removed %d calculated trades for user %s", removed, user_id)
    return process_user_orders(session, user_id, report_timezone)
