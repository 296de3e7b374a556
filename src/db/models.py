"""
SQLModel definitions for the trade journal.
Designed for SQLite locally, PostgreSQL in production.
"""

from datetime import datetime
from typing import Optional, List
from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship, Column
import uuid


class User(SQLModel, table=True):
    """Journal user; every order and trade belongs to one."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    orders: List["Order"] = Relationship(back_populates="user", cascade_delete=True)
    trades: List["Trade"] = Relationship(back_populates="user", cascade_delete=True)


class Order(SQLModel, table=True):
    """Individual order fill (buy/sell) from a CSV upload or broker sync."""
    __tablename__ = "broker_order"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)

    # Broker identifier (unique per user prevents duplicate imports)
    broker_order_id: Optional[str] = Field(default=None, index=True)
    symbol: str = Field(index=True)

    side: str = Field()  # BUY or SELL
    quantity: int = Field()
    price: Optional[float] = Field(default=None)

    # Timestamps (stored in UTC)
    executed_at: Optional[datetime] = Field(default=None, index=True)
    cancelled_at: Optional[datetime] = Field(default=None)

    # Last trade this order was linked to; trade_orders holds every link
    trade_id: Optional[str] = Field(default=None, foreign_key="trade.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "broker_order_id", name="uq_user_broker_order"),
    )

    user: User = Relationship(back_populates="orders")
    trade_orders: List["TradeOrder"] = Relationship(back_populates="order", cascade_delete=True)


class Trade(SQLModel, table=True):
    """Reconstructed trade (may span multiple orders and share split orders)."""
    __tablename__ = "trade"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)

    symbol: str = Field(index=True)
    side: str = Field()  # LONG or SHORT
    status: str = Field(default="OPEN", index=True)  # OPEN, CLOSED

    # Lifecycle timestamps (UTC)
    open_time: datetime = Field(index=True)
    close_time: Optional[datetime] = Field(default=None, index=True)

    avg_entry_price: Optional[float] = Field(default=None)
    avg_exit_price: Optional[float] = Field(default=None)
    open_quantity: int = Field(default=0)
    close_quantity: int = Field(default=0)
    quantity: int = Field(default=0)  # Total quantity across orders (allocations applied)
    remaining_quantity: int = Field(default=0)
    pnl: float = Field(default=0.0)
    cost_basis: Optional[float] = Field(default=None)
    proceeds: Optional[float] = Field(default=None)

    orders_in_trade: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    order_allocations: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    orders_count: int = Field(default=0)
    executions: int = Field(default=0)

    time_in_trade: int = Field(default=0)  # seconds
    market_session: Optional[str] = Field(default=None)  # PRE_MARKET, REGULAR, AFTER_HOURS
    holding_period: Optional[str] = Field(default=None)  # INTRADAY, SWING

    is_calculated: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    user: User = Relationship(back_populates="trades")
    trade_orders: List["TradeOrder"] = Relationship(back_populates="trade", cascade_delete=True)


class TradeOrder(SQLModel, table=True):
    """Link between Trade and Order (records how many shares of each order went to this trade)."""
    __tablename__ = "trade_order"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    trade_id: str = Field(foreign_key="trade.id", index=True)
    order_id: str = Field(foreign_key="broker_order.id", index=True)

    quantity: int = Field()  # Quantity of the order attributed to this trade

    __table_args__ = (
        UniqueConstraint("trade_id", "order_id", name="uq_trade_order"),
    )

    trade: Trade = Relationship(back_populates="trade_orders")
    order: Order = Relationship(back_populates="trade_orders")
