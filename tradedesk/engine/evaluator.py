"""Settlement evaluation: decide win/lose and the payout for an expired trade.

Pure arithmetic over ``Decimal`` values; no I/O. The coordinator hands in the
trade row and, unless an admin override is set, the reference price fetched at
expiry.

Rules:
- A predetermined result is authoritative and the market price is ignored.
- ``up`` wins iff reference > entry, ``down`` wins iff reference < entry.
- A tie loses in both directions.
- A win pays back stake plus profit: ``amount * (1 + profit_percentage / 100)``,
  quantized to the 8 decimal places the balance column stores.
"""

from dataclasses import dataclass
from decimal import Decimal

from tradedesk.errors import InvalidTradeState
from tradedesk.utils.constants import DIRECTIONS, MONEY_QUANTUM, RESULTS

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class Evaluation:
    result: str  # "win" or "lose"
    payout_delta: Decimal

    @property
    def is_win(self) -> bool:
        return self.result == "win"


def _decimal(name: str, value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        try:
            return Decimal(value)
        except ArithmeticError:
            raise InvalidTradeState(f"{name} is not a decimal: {value!r}")
    raise InvalidTradeState(f"{name} must be a Decimal, got {type(value).__name__}")


def payout_for(result: str, amount: Decimal, profit_percentage: Decimal) -> Decimal:
    if result != "win":
        return ZERO
    return (amount * (1 + profit_percentage / HUNDRED)).quantize(MONEY_QUANTUM)


def evaluate(trade, reference_price: Decimal | None) -> Evaluation:
    """Resolve a trade against ``reference_price`` or its predetermined result."""
    if trade.direction not in DIRECTIONS:
        raise InvalidTradeState(f"Trade {trade.id}: unknown direction {trade.direction!r}")

    amount = _decimal("amount", trade.amount)
    profit_percentage = _decimal("profit_percentage", trade.profit_percentage)
    if amount <= ZERO:
        raise InvalidTradeState(f"Trade {trade.id}: amount must be positive, got {amount}")
    if profit_percentage < ZERO:
        raise InvalidTradeState(
            f"Trade {trade.id}: profit_percentage must not be negative, got {profit_percentage}"
        )

    override = trade.predetermined_result
    if override is not None:
        if override not in RESULTS:
            raise InvalidTradeState(f"Trade {trade.id}: unknown predetermined result {override!r}")
        return Evaluation(override, payout_for(override, amount, profit_percentage))

    if reference_price is None:
        raise InvalidTradeState(f"Trade {trade.id}: no reference price and no predetermined result")

    entry = _decimal("entry_price", trade.entry_price)
    reference = _decimal("reference_price", reference_price)

    if trade.direction == "up":
        won = reference > entry
    else:
        won = reference < entry

    result = "win" if won else "lose"
    return Evaluation(result, payout_for(result, amount, profit_percentage))
