"""Settlement error taxonomy."""


class SettlementError(Exception):
    """Base class for trade settlement failures."""


class InvalidTradeState(SettlementError):
    """Trade data cannot be settled as stored. Left untouched for manual inspection."""


class PriceUnavailable(SettlementError):
    """The price reference could not supply a current price for the asset."""

    def __init__(self, asset_id: str, reason: str = ""):
        self.asset_id = asset_id
        self.reason = reason
        message = f"No price available for {asset_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StoreConflict(SettlementError):
    """A conditional update matched no row because another writer got there first."""


class NotificationDeliveryFailed(SettlementError):
    """A settlement event could not be handed to a live session."""


class TradeNotFound(SettlementError):
    pass


class InsufficientBalance(SettlementError):
    pass
