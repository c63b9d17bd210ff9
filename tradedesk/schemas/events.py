"""Real-time event payloads pushed to connected clients."""

from decimal import Decimal
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    event_type: ClassVar[str]

    def to_message(self) -> dict:
        return {"type": self.event_type, "data": self.model_dump(mode="json", by_alias=True)}


class SettlementEvent(Event):
    event_type: ClassVar[str] = "trade-update"

    trade_id: int
    user_id: int
    result: Literal["win", "lose"]
    status: Literal["completed"] = "completed"


class BalanceEvent(Event):
    event_type: ClassVar[str] = "balance-update"

    user_id: int
    balance: Decimal
