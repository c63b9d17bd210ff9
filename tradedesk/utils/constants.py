"""Shared trade constants and defaults."""

from decimal import Decimal

DIRECTIONS = ("up", "down")
RESULTS = ("win", "lose")

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

# Trade duration (seconds) to payout rate on a win, in percent
DURATION_PROFIT_PCT: dict[int, Decimal] = {
    60: Decimal("30"),
    120: Decimal("40"),
    300: Decimal("50"),
}
DEFAULT_PROFIT_PCT = Decimal("30")

# Money columns keep 8 decimal places
MONEY_QUANTUM = Decimal("0.00000001")


def profit_percentage_for(duration: int) -> Decimal:
    return DURATION_PROFIT_PCT.get(duration, DEFAULT_PROFIT_PCT)
