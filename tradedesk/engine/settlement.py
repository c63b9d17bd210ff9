"""Trade settlement.

``SettlementCoordinator.settle`` is what the scheduler calls when a trade's
timer fires, and what operators call for manual recovery. It orchestrates:
re-read trade → price fetch (unless overridden) → evaluation → one atomic
store update → notification.

The store update is a conditional ``UPDATE ... WHERE status = 'active'``, so a
duplicate timer, a late timer, or a racing admin cancel can never produce a
second terminal transition. Only the winner of that update touches the balance.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session

from tradedesk.engine.evaluator import Evaluation, evaluate
from tradedesk.errors import InvalidTradeState, StoreConflict
from tradedesk.models.trade import Trade
from tradedesk.models.user import User
from tradedesk.schemas.events import BalanceEvent, SettlementEvent
from tradedesk.services.notifications import NotificationFanout
from tradedesk.services.price_reference import PriceReference
from tradedesk.utils.clock import utcnow
from tradedesk.utils.constants import STATUS_ACTIVE, STATUS_COMPLETED

logger = logging.getLogger(__name__)

# Passes allowed when an admin override changes between read and write
MAX_SETTLE_PASSES = 3


@dataclass(frozen=True)
class SettlementOutcome:
    trade_id: int
    user_id: int
    result: str
    payout: Decimal
    balance: Decimal
    closed_at: datetime

    def to_event(self) -> SettlementEvent:
        return SettlementEvent(trade_id=self.trade_id, user_id=self.user_id, result=self.result)


class SettlementCoordinator:
    def __init__(
        self,
        engine: Engine,
        prices: PriceReference,
        fanout: NotificationFanout,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.prices = prices
        self.fanout = fanout
        self.clock = clock
        self._locks: dict[int, asyncio.Lock] = {}

    async def settle(self, trade_id: int) -> SettlementOutcome | None:
        """Settle one trade. Returns None when there was nothing to do.

        Raises InvalidTradeState for malformed trades and PriceUnavailable when
        the market price cannot be fetched; the trade stays active in both cases.
        """
        lock = self._locks.setdefault(trade_id, asyncio.Lock())
        if lock.locked():
            logger.warning(f"[trade_{trade_id}] Settlement already in progress, skipping")
            return None

        try:
            async with lock:
                outcome = await self._settle_once(trade_id)
        finally:
            if not lock.locked():
                self._locks.pop(trade_id, None)

        if outcome is not None:
            await self._notify(outcome)
        return outcome

    async def _settle_once(self, trade_id: int) -> SettlementOutcome | None:
        for _ in range(MAX_SETTLE_PASSES):
            trade = self._load(trade_id)
            if trade.status != STATUS_ACTIVE:
                logger.info(f"[trade_{trade_id}] Already {trade.status}, nothing to settle")
                return None

            reference = None
            if trade.predetermined_result is None:
                reference = await self.prices.get_current_price(trade.asset_id)

            evaluation = evaluate(trade, reference)
            try:
                outcome = self._apply(trade, evaluation)
            except StoreConflict:
                # Either another writer closed the trade or the override moved; re-read
                logger.info(f"[trade_{trade_id}] Conditional update lost, re-reading")
                continue

            source = "predetermined" if reference is None else f"ref={reference} entry={trade.entry_price}"
            logger.info(
                f"[trade_{trade_id}] Settled {trade.direction} {outcome.result} ({source}) "
                f"payout={outcome.payout} balance={outcome.balance}"
            )
            return outcome

        logger.warning(f"[trade_{trade_id}] Gave up after {MAX_SETTLE_PASSES} conflicting passes")
        return None

    def _load(self, trade_id: int) -> Trade:
        with Session(self.engine) as session:
            trade = session.get(Trade, trade_id)
            if trade is None:
                raise InvalidTradeState(f"Trade {trade_id} not found")
            return trade

    def _apply(self, trade: Trade, evaluation: Evaluation) -> SettlementOutcome:
        """Write status, result, closed_at and the balance effect as one transaction."""
        closed_at = self.clock()
        override_guard = (
            Trade.predetermined_result.is_(None)
            if trade.predetermined_result is None
            else Trade.predetermined_result == trade.predetermined_result
        )
        stmt = (
            update(Trade)
            .where(Trade.id == trade.id, Trade.status == STATUS_ACTIVE, override_guard)
            .values(status=STATUS_COMPLETED, result=evaluation.result, closed_at=closed_at)
        )

        with Session(self.engine) as session:
            res = session.connection().execute(stmt)
            if res.rowcount != 1:
                session.rollback()
                raise StoreConflict(f"Trade {trade.id} changed during settlement")

            user = session.get(User, trade.user_id, with_for_update=True)
            if user is None:
                session.rollback()
                raise InvalidTradeState(f"Trade {trade.id}: owner {trade.user_id} not found")

            if evaluation.payout_delta:
                user.balance = user.balance + evaluation.payout_delta
                session.add(user)
            balance = user.balance
            session.commit()

        return SettlementOutcome(
            trade_id=trade.id,
            user_id=trade.user_id,
            result=evaluation.result,
            payout=evaluation.payout_delta,
            balance=balance,
            closed_at=closed_at,
        )

    async def _notify(self, outcome: SettlementOutcome):
        await self.fanout.notify(outcome.user_id, outcome.to_event())
        if outcome.payout:
            await self.fanout.notify(
                outcome.user_id, BalanceEvent(user_id=outcome.user_id, balance=outcome.balance)
            )
