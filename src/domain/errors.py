"""Trade builder exceptions."""


class TradeBuilderError(Exception):
    """Base class for trade builder errors."""


class TradeNotFoundError(TradeBuilderError, LookupError):
    """Raised when a persisted trade expected by the builder does not exist."""

    def __init__(self, trade_id: str):
        super().__init__(f"Trade not found: {trade_id}")
        self.trade_id = trade_id
