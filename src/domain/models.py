"""Domain value objects."""

from typing import Optional, List
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "TradeSide":
        return TradeSide.SHORT if self is TradeSide.LONG else TradeSide.LONG

    @property
    def entry_order_side(self) -> OrderSide:
        """Order side that adds to a position of this side."""
        return OrderSide.BUY if self is TradeSide.LONG else OrderSide.SELL

    @property
    def exit_order_side(self) -> OrderSide:
        return OrderSide.SELL if self is TradeSide.LONG else OrderSide.BUY

    @classmethod
    def for_order_side(cls, side: str) -> "TradeSide":
        return cls.LONG if side == OrderSide.BUY else cls.SHORT


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class MarketSession(str, Enum):
    PRE_MARKET = "PRE_MARKET"
    REGULAR = "REGULAR"
    AFTER_HOURS = "AFTER_HOURS"


class HoldingPeriod(str, Enum):
    INTRADAY = "INTRADAY"
    SWING = "SWING"


@dataclass(frozen=True)
class OrderAllocation:
    """Portion of a single order's quantity attributed to one position/trade."""
    order_id: str
    quantity_allocated: int
    total_order_quantity: int
    price: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "OrderAllocation":
        return cls(
            order_id=data["order_id"],
            quantity_allocated=int(data["quantity_allocated"]),
            total_order_quantity=int(data["total_order_quantity"]),
            price=float(data["price"]),
        )


@dataclass
class OpenPosition:
    """Tracks the single open position for a symbol during a run."""
    symbol: str
    side: TradeSide
    open_quantity: int  # Net quantity still open, > 0 while tracked
    total_cost_basis: float
    open_time: datetime
    order_ids: List[str] = field(default_factory=list)
    # Only orders NOT wholly owned by this position appear here
    order_allocations: List[OrderAllocation] = field(default_factory=list)
    # Set when reloaded from a persisted OPEN trade
    existing_trade_id: Optional[str] = None
    # Resumed position touched by an order in this run
    has_new_orders: bool = False

    @property
    def is_resumed(self) -> bool:
        return self.existing_trade_id is not None

    @property
    def avg_entry_price(self) -> float:
        return self.total_cost_basis / self.open_quantity


@dataclass
class ProcessedTrade:
    """Finalized trade emitted by the builder, before persistence assigns an id."""
    symbol: str
    side: TradeSide
    status: TradeStatus
    open_time: datetime
    close_time: Optional[datetime] = None
    avg_entry_price: Optional[float] = None
    avg_exit_price: Optional[float] = None
    open_quantity: int = 0
    close_quantity: int = 0
    pnl: float = 0.0
    orders_in_trade: List[str] = field(default_factory=list)
    order_allocations: List[OrderAllocation] = field(default_factory=list)
    id: Optional[str] = None
    # Persisted trade this one rolls forward instead of inserting a new row
    existing_trade_id: Optional[str] = None
