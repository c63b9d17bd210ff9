"""Pydantic schemas for the trade API."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class TradeCreate(BaseModel):
    asset_id: str = Field(min_length=1, max_length=64)
    direction: Literal["up", "down"]
    amount: Decimal = Field(gt=0, max_digits=28, decimal_places=8)
    duration: int = Field(gt=0, le=86400)  # seconds

    @field_validator("asset_id")
    @classmethod
    def _trim_asset(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text


class TradeRead(BaseModel):
    id: int
    user_id: int
    asset_id: str
    entry_price: Decimal
    direction: str
    amount: Decimal
    profit_percentage: Decimal
    duration: int
    status: str
    result: str | None
    predetermined_result: str | None
    created_at: datetime
    end_time: datetime | None
    closed_at: datetime | None

    model_config = {"from_attributes": True}


class PredeterminedUpdate(BaseModel):
    # None clears the override
    predetermined_result: Literal["win", "lose"] | None


class SettleResponse(BaseModel):
    trade_id: int
    settled: bool
    result: str | None = None
    payout: Decimal | None = None
    status: str
