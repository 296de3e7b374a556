from __future__ import annotations

from datetime import datetime

import pytest
from sqlmodel import select

from src.db.models import Order, Trade, TradeOrder
from src.db.repositories import OrdersRepository, TradesRepository
from src.domain.errors import TradeNotFoundError
from src.domain.models import OrderAllocation


def _trade(user_id, **overrides):
    data = dict(
        user_id=user_id,
        symbol="AAPL",
        side="LONG",
        status="OPEN",
        open_time=datetime(2025, 1, 2, 14, 30),
        open_quantity=10,
        remaining_quantity=10,
    )
    data.update(overrides)
    return data


def test_unprocessed_orders_are_executed_unlinked_and_ordered(session, test_user, add_order):
    late = add_order("SELL", 5, 11.0, datetime(2025, 1, 2, 16, 0))
    early = add_order("BUY", 5, 10.0, datetime(2025, 1, 2, 14, 30))
    add_order("BUY", 5, 10.0, None)  # never executed

    cancelled = add_order("BUY", 5, 10.0, datetime(2025, 1, 2, 15, 0))
    cancelled.cancelled_at = datetime(2025, 1, 2, 15, 1)
    session.add(cancelled)

    linked = add_order("BUY", 5, 10.0, datetime(2025, 1, 2, 15, 30))
    trades = TradesRepository(session)
    trade = trades.save_trade(_trade(test_user.id))
    OrdersRepository(session).update_orders_with_trade_id([linked.id], trade.id)
    session.commit()

    orders = OrdersRepository(session).get_unprocessed_orders(test_user.id)

    assert [o.id for o in orders] == [early.id, late.id]


def test_split_order_links_to_both_trades(session, test_user, add_order):
    order = add_order("SELL", 80, 12.0, datetime(2025, 1, 2, 15, 0))
    trades = TradesRepository(session)
    orders = OrdersRepository(session)
    closed = trades.save_trade(_trade(test_user.id, status="CLOSED"))
    opened = trades.save_trade(_trade(test_user.id, side="SHORT"))

    orders.update_orders_with_trade_id([order.id], closed.id, [OrderAllocation(order.id, 50, 80, 12.0)])
    orders.update_orders_with_trade_id([order.id], opened.id, [OrderAllocation(order.id, 30, 80, 12.0)])
    # Linking the same pair again does not duplicate it
    orders.update_orders_with_trade_id([order.id], opened.id, [OrderAllocation(order.id, 30, 80, 12.0)])
    session.commit()

    links = session.exec(select(TradeOrder).where(TradeOrder.order_id == order.id)).all()
    assert sorted(link.quantity for link in links) == [30, 50]
    assert set(orders.get_trade_ids_for_order(order.id)) == {closed.id, opened.id}
    assert session.get(Order, order.id).trade_id == opened.id


def test_unsplit_order_links_with_full_quantity(session, test_user, add_order):
    order = add_order("BUY", 25, 10.0, datetime(2025, 1, 2, 14, 30))
    trade = TradesRepository(session).save_trade(_trade(test_user.id))

    OrdersRepository(session).update_orders_with_trade_id([order.id], trade.id)

    link = session.exec(select(TradeOrder)).one()
    assert (link.trade_id, link.quantity) == (trade.id, 25)


def test_open_trades_and_update(session, test_user):
    trades = TradesRepository(session)
    first = trades.save_trade(_trade(test_user.id, symbol="MSFT", open_time=datetime(2025, 1, 3, 15)))
    second = trades.save_trade(_trade(test_user.id, symbol="AAPL"))
    trades.save_trade(_trade(test_user.id, symbol="TSLA", status="CLOSED"))
    trades.save_trade(_trade(test_user.id, symbol="NVDA", is_calculated=False))

    assert [t.id for t in trades.get_all_open_trades(test_user.id)] == [second.id, first.id]

    updated = trades.update_trade(first.id, {"status": "CLOSED", "pnl": 12.5})
    assert updated.status == "CLOSED"
    assert updated.pnl == 12.5
    assert [t.id for t in trades.get_all_open_trades(test_user.id)] == [second.id]


def test_update_missing_trade_raises(session):
    with pytest.raises(TradeNotFoundError) as excinfo:
        TradesRepository(session).update_trade("missing", {"pnl": 1.0})
    assert excinfo.value.trade_id == "missing"
    assert isinstance(excinfo.value, LookupError)


def test_reset_trades_for_user(session, test_user, add_order):
    order = add_order("BUY", 10, 10.0, datetime(2025, 1, 2, 14, 30))
    trades = TradesRepository(session)
    orders = OrdersRepository(session)
    trade = trades.save_trade(_trade(test_user.id))
    orders.update_orders_with_trade_id([order.id], trade.id)
    manual = trades.save_trade(_trade(test_user.id, is_calculated=False))
    session.commit()

    assert trades.reset_trades_for_user(test_user.id) == 1
    session.commit()

    assert session.exec(select(TradeOrder)).all() == []
    assert session.get(Order, order.id).trade_id is None
    assert [t.id for t in session.exec(select(Trade)).all()] == [manual.id]
    assert [o.id for o in orders.get_unprocessed_orders(test_user.id)] == [order.id]
    assert trades.reset_trades_for_user(test_user.id) == 0
