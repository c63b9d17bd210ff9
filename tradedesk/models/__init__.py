"""Database models."""

from tradedesk.models.user import User
from tradedesk.models.trade import Trade

__all__ = [
    "User",
    "Trade",
]
