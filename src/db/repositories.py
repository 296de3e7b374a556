"""Repositories backing the trade builder with a SQLModel session."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlmodel import Session, select

from src.db.models import Order, Trade, TradeOrder
from src.domain.errors import TradeNotFoundError

logger = logging.getLogger(__name__)


class OrdersRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_unprocessed_orders(self, user_id: str) -> List[Order]:
        """Executed, non-cancelled orders with no trade link, oldest first."""
        linked = select(TradeOrder.order_id)
        stmt = (
            select(Order)
            .where(
                Order.user_id == user_id,
                Order.executed_at.is_not(None),
                Order.cancelled_at.is_(None),
                Order.id.not_in(linked),
            )
            .order_by(Order.executed_at, Order.created_at)
        )
        return list(self.session.exec(stmt).all())

    def get_orders_by_ids(self, order_ids: Sequence[str]) -> List[Order]:
        if not order_ids:
            return []
        stmt = select(Order).where(Order.id.in_(list(order_ids)))
        return list(self.session.exec(stmt).all())

    def update_orders_with_trade_id(
        self,
        order_ids: Sequence[str],
        trade_id: str,
        allocations: Optional[Iterable] = None,
    ) -> None:
        """
        Link orders to a trade.

        One trade_order row per (order, trade) records the quantity the trade
        owns, so an order split across two trades is linked to both. Re-linking
        the same pair updates the row instead of duplicating it.
        """
        allocated = {a.order_id: a.quantity_allocated for a in allocations or []}

        existing = {
            link.order_id: link
            for link in self.session.exec(
                select(TradeOrder).where(TradeOrder.trade_id == trade_id)
            ).all()
        }

        for order in self.get_orders_by_ids(order_ids):
            quantity = allocated.get(order.id, order.quantity)
            link = existing.get(order.id)
            if link is None:
                self.session.add(
                    TradeOrder(trade_id=trade_id, order_id=order.id, quantity=quantity)
                )
            else:
                link.quantity = quantity
                self.session.add(link)

            order.trade_id = trade_id
            self.session.add(order)

        self.session.flush()

    def get_trade_ids_for_order(self, order_id: str) -> List[str]:
        stmt = select(TradeOrder.trade_id).where(TradeOrder.order_id == order_id)
        return list(self.session.exec(stmt).all())


class TradesRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_all_open_trades(self, user_id: str) -> List[Trade]:
        stmt = (
            select(Trade)
            .where(
                Trade.user_id == user_id,
                Trade.status == "OPEN",
                Trade.is_calculated == True,  # noqa: E712
            )
            .order_by(Trade.open_time)
        )
        return list(self.session.exec(stmt).all())

    def save_trade(self, data: Dict[str, Any]) -> Trade:
        trade = Trade(**data)
        self.session.add(trade)
        self.session.flush()
        return trade

    def update_trade(self, trade_id: str, data: Dict[str, Any]) -> Trade:
        trade = self.session.get(Trade, trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)

        for key, value in data.items():
            setattr(trade, key, value)
        trade.updated_at = datetime.utcnow()

        self.session.add(trade)
        self.session.flush()
        return trade

    def reset_trades_for_user(self, user_id: str) -> int:
        """
        Delete the user's calculated trades and every order link to them.
        Returns the number of trades removed.
        """
        trade_ids = list(
            self.session.exec(
                select(Trade.id).where(
                    Trade.user_id == user_id,
                    Trade.is_calculated == True,  # noqa: E712
                )
            ).all()
        )
        if not trade_ids:
            return 0

        self.session.query(Order).filter(Order.trade_id.in_(trade_ids)).update(
            {Order.trade_id: None}, synchronize_session=False
        )
        self.session.query(TradeOrder).filter(TradeOrder.trade_id.in_(trade_ids)).delete(
            synchronize_session=False
        )
        self.session.query(Trade).filter(Trade.id.in_(trade_ids)).delete(
            synchronize_session=False
        )
        self.session.flush()
        # Bulk statements bypass the identity map
        self.session.expire_all()

        logger.debug("Reset %d trades for user %s", len(trade_ids), user_id)
        return len(trade_ids)
