"""
Open position tracking and order allocation bookkeeping.

The tracker holds at most one open position per symbol. Orders whose quantity
is split between two positions carry an OrderAllocation on each side; every
other order belongs wholly to the one position that lists it.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional

from src.domain.models import OpenPosition, OrderAllocation, TradeSide

logger = logging.getLogger(__name__)


def allocation_map(allocations: Optional[Iterable[OrderAllocation]]) -> Dict[str, int]:
    """order_id -> quantity allocated, for the orders split by these allocations."""
    return {a.order_id: a.quantity_allocated for a in allocations or []}


def allocated_quantity(order, allocations: Optional[Iterable[OrderAllocation]] = None) -> int:
    """Quantity of `order` owned by the position/trade holding `allocations`."""
    return allocation_map(allocations).get(order.id, order.quantity)


class PositionTracker:
    """In-memory symbol -> OpenPosition map owned by one builder run."""

    def __init__(self):
        self._positions: Dict[str, OpenPosition] = {}

    def __iter__(self) -> Iterator[OpenPosition]:
        return iter(list(self._positions.values()))

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._positions

    def get(self, symbol: str) -> Optional[OpenPosition]:
        return self._positions.get(symbol)

    def clear(self) -> None:
        self._positions.clear()

    def load_existing_open_positions(self, open_trades: Iterable) -> List[OpenPosition]:
        """
        Seed the tracker from persisted OPEN trades so a run resumes where the
        previous one stopped.

        Each loaded position carries `existing_trade_id`; its open quantity is
        the trade's remaining quantity and its cost basis is rescaled to it.
        """
        loaded = []
        for trade in open_trades:
            remaining = trade.remaining_quantity
            if remaining is None:
                remaining = trade.open_quantity or 0
            if remaining <= 0:
                logger.warning(
                    "Open trade %s for %s has no remaining quantity, not resuming",
                    trade.id, trade.symbol,
                )
                continue

            if trade.avg_entry_price is not None:
                cost_basis = float(trade.avg_entry_price) * remaining
            elif trade.cost_basis and trade.open_quantity:
                cost_basis = float(trade.cost_basis) / trade.open_quantity * remaining
            else:
                cost_basis = 0.0

            if trade.symbol in self._positions:
                logger.warning(
                    "Multiple open trades for %s; trade %s replaces %s",
                    trade.symbol, trade.id, self._positions[trade.symbol].existing_trade_id,
                )

            position = OpenPosition(
                symbol=trade.symbol,
                side=TradeSide(trade.side),
                open_quantity=remaining,
                total_cost_basis=cost_basis,
                open_time=trade.open_time,
                order_ids=list(trade.orders_in_trade or []),
                order_allocations=[
                    OrderAllocation.from_dict(a) for a in trade.order_allocations or []
                ],
                existing_trade_id=trade.id,
            )
            self._positions[trade.symbol] = position
            loaded.append(position)

        logger.debug("Resumed %d open positions", len(loaded))
        return loaded

    def open_position(
        self,
        symbol: str,
        side: TradeSide,
        quantity: int,
        price: float,
        open_time: datetime,
        order_id: str,
        allocation: Optional[OrderAllocation] = None,
    ) -> OpenPosition:
        """Start a fresh position; `allocation` is set when only part of the order opens it."""
        position = OpenPosition(
            symbol=symbol,
            side=side,
            open_quantity=quantity,
            total_cost_basis=quantity * price,
            open_time=open_time,
            order_ids=[order_id],
            order_allocations=[allocation] if allocation else [],
        )
        self._positions[symbol] = position
        return position

    def add_to_position(self, position: OpenPosition, quantity: int, price: float, order_id: str) -> None:
        """Same-side fill: grow quantity and cost basis."""
        position.open_quantity += quantity
        position.total_cost_basis += quantity * price
        position.order_ids.append(order_id)
        position.has_new_orders = True

    def record_closing_order(
        self,
        position: OpenPosition,
        order_id: str,
        allocation: Optional[OrderAllocation] = None,
    ) -> None:
        """Attach an opposite-side order to the position it (partly) closes."""
        position.order_ids.append(order_id)
        if allocation is not None:
            position.order_allocations.append(allocation)
        position.has_new_orders = True

    def reduce_position(self, position: OpenPosition, closing_quantity: int) -> None:
        """Partial close: shrink quantity, keep the average entry price."""
        avg_entry = position.avg_entry_price
        position.open_quantity -= closing_quantity
        position.total_cost_basis = avg_entry * position.open_quantity

    def remove(self, symbol: str) -> Optional[OpenPosition]:
        return self._positions.pop(symbol, None)
