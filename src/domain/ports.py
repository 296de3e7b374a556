"""Repository interfaces consumed by the trade builder."""

from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from src.domain.models import OrderAllocation


class OrdersRepository(Protocol):
    def get_unprocessed_orders(self, user_id: str) -> List[Any]:
        """Executed orders not yet linked to a trade, ascending by execution time."""
        ...

    def get_orders_by_ids(self, order_ids: Sequence[str]) -> List[Any]:
        ...

    def update_orders_with_trade_id(
        self,
        order_ids: Sequence[str],
        trade_id: str,
        allocations: Optional[Iterable[OrderAllocation]] = None,
    ) -> None:
        ...


class TradesRepository(Protocol):
    def get_all_open_trades(self, user_id: str) -> List[Any]:
        ...

    def save_trade(self, data: Dict[str, Any]) -> Any:
        ...

    def update_trade(self, trade_id: str, data: Dict[str, Any]) -> Any:
        ...

    def reset_trades_for_user(self, user_id: str) -> int:
        ...
