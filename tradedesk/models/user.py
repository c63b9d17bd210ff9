"""User model: login identity and the account balance trades settle against."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field

from tradedesk.models.types import ExactDecimal


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    hashed_password: str
    role: str = "user"  # "user" or "admin"
    balance: Decimal = Field(default=Decimal("0"), sa_type=ExactDecimal(28, 8))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
