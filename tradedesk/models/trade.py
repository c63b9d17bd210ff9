"""Trade model: one timed up/down bet, open or closed."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field

from tradedesk.models.types import ExactDecimal


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    asset_id: str = Field(index=True)  # e.g. "bitcoin"
    entry_price: Decimal = Field(sa_type=ExactDecimal(28, 8))
    direction: str  # "up" or "down"
    amount: Decimal = Field(sa_type=ExactDecimal(28, 8))
    profit_percentage: Decimal = Field(sa_type=ExactDecimal(10, 4))
    duration: int  # seconds
    status: str = Field(default="active", index=True)  # "active", "completed", "cancelled"
    result: str | None = None  # "win" or "lose", set once on completion
    predetermined_result: str | None = None  # admin override, "win" or "lose"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    closed_at: datetime | None = None
