"""APScheduler integration for FastAPI.

Manages one date-triggered job per open trade. Each job fires at the trade's
end time and hands the trade to the settlement coordinator exactly once; a
price outage gets a single delayed retry, anything else is logged and surfaced
to operators for manual settlement.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from tradedesk.engine.settlement import SettlementCoordinator
from tradedesk.errors import InvalidTradeState, PriceUnavailable
from tradedesk.models.trade import Trade
from tradedesk.services.alerts import OperatorAlerts
from tradedesk.utils.clock import as_utc, utcnow
from tradedesk.utils.constants import STATUS_ACTIVE

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "stuck_trade_sweep"


def _job_id(trade_id: int) -> str:
    return f"trade_{trade_id}"


def _retry_job_id(trade_id: int) -> str:
    return f"trade_{trade_id}_retry"


def expected_end_time(trade: Trade) -> datetime:
    if trade.end_time is not None:
        return as_utc(trade.end_time)
    return as_utc(trade.created_at) + timedelta(seconds=trade.duration)


def find_stuck_trades(engine: Engine, grace_seconds: int, now: datetime | None = None) -> list[Trade]:
    """Active trades whose end time passed more than ``grace_seconds`` ago."""
    cutoff = (now or utcnow()) - timedelta(seconds=grace_seconds)
    with Session(engine) as session:
        trades = session.exec(select(Trade).where(Trade.status == STATUS_ACTIVE)).all()
    return sorted(
        (t for t in trades if expected_end_time(t) < cutoff),
        key=expected_end_time,
    )


class TradeScheduler:
    def __init__(
        self,
        coordinator: SettlementCoordinator,
        engine: Engine,
        alerts: OperatorAlerts,
        scheduler: AsyncIOScheduler | None = None,
        retry_backoff_seconds: float = 5.0,
        stuck_grace_seconds: int = 30,
        sweep_interval_seconds: int = 60,
    ):
        self.coordinator = coordinator
        self.engine = engine
        self.alerts = alerts
        self.scheduler = scheduler or AsyncIOScheduler()
        self.retry_backoff_seconds = retry_backoff_seconds
        self.stuck_grace_seconds = stuck_grace_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._reported_stuck: set[int] = set()

    def add_trade_job(self, trade_id: int, end_time: datetime):
        """Add or replace the settlement job for a trade."""
        run_date = as_utc(end_time)
        self.scheduler.add_job(
            self.fire,
            trigger=DateTrigger(run_date=run_date),
            args=[trade_id],
            id=_job_id(trade_id),
            name=f"Settle trade {trade_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,  # a late fire still settles
        )
        logger.info(f"Scheduled settlement of trade {trade_id} at {run_date.isoformat()}")

    def remove_trade_job(self, trade_id: int):
        """Remove the pending settlement (and retry) job for a trade."""
        for job_id in (_job_id(trade_id), _retry_job_id(trade_id)):
            if self.scheduler.get_job(job_id):
                self.scheduler.remove_job(job_id)
                logger.info(f"Removed job {job_id}")

    def _add_retry_job(self, trade_id: int):
        run_date = utcnow() + timedelta(seconds=self.retry_backoff_seconds)
        self.scheduler.add_job(
            self.fire,
            trigger=DateTrigger(run_date=run_date),
            args=[trade_id, 2],
            id=_retry_job_id(trade_id),
            name=f"Retry settlement of trade {trade_id}",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=None,
        )

    async def fire(self, trade_id: int, attempt: int = 1):
        """Trigger settlement for a trade. Never raises."""
        try:
            await self.coordinator.settle(trade_id)
        except PriceUnavailable as e:
            if attempt == 1:
                logger.warning(
                    f"[trade_{trade_id}] {e}; retrying in {self.retry_backoff_seconds}s"
                )
                self._add_retry_job(trade_id)
            else:
                logger.error(f"[trade_{trade_id}] {e}; retry exhausted")
                await self._surface(trade_id, f"price unavailable after retry ({e})")
        except InvalidTradeState as e:
            logger.error(f"[trade_{trade_id}] Invalid trade state: {e}")
            await self._surface(trade_id, f"invalid trade state ({e})")
        except Exception as e:
            logger.error(f"[trade_{trade_id}] Settlement error: {e}", exc_info=True)
            await self._surface(trade_id, f"settlement error ({e})")

    async def _surface(self, trade_id: int, reason: str):
        self._reported_stuck.add(trade_id)
        await self.alerts.send(f"Trade {trade_id} needs manual settlement: {reason}")

    async def reconcile(self) -> dict:
        """Restart recovery for every active trade.

        Backfills a missing end time, settles overdue trades right away and
        re-registers jobs for the rest.
        """
        now = utcnow()
        with Session(self.engine) as session:
            trades = session.exec(select(Trade).where(Trade.status == STATUS_ACTIVE)).all()
            backfilled = 0
            for trade in trades:
                if trade.end_time is None:
                    trade.end_time = expected_end_time(trade)
                    session.add(trade)
                    backfilled += 1
            if backfilled:
                session.commit()
                logger.info(f"Reconcile: backfilled end_time on {backfilled} trades")
            schedule = [(t.id, expected_end_time(t)) for t in trades]

        overdue = [trade_id for trade_id, end_time in schedule if end_time <= now]
        pending = [(trade_id, end_time) for trade_id, end_time in schedule if end_time > now]

        for trade_id, end_time in pending:
            self.add_trade_job(trade_id, end_time)

        if overdue:
            logger.info(f"Reconcile: settling {len(overdue)} overdue trades")
            await asyncio.gather(*(self.fire(trade_id) for trade_id in overdue))

        logger.info(
            f"Reconcile: {len(overdue)} overdue, {len(pending)} rescheduled, "
            f"{backfilled} backfilled"
        )
        return {"overdue": len(overdue), "rescheduled": len(pending), "backfilled": backfilled}

    async def sweep_stuck_trades(self) -> list[int]:
        """Surface trades left active past their end time. Each trade is alerted once."""
        stuck = find_stuck_trades(self.engine, self.stuck_grace_seconds)
        stuck_ids = [t.id for t in stuck]
        for trade in stuck:
            if trade.id in self._reported_stuck:
                continue
            overdue = (utcnow() - expected_end_time(trade)).total_seconds()
            logger.warning(f"[trade_{trade.id}] Still active {overdue:.0f}s after end time")
            await self._surface(trade.id, f"still active {overdue:.0f}s after end time")
        # Forget trades that have since been resolved
        self._reported_stuck.intersection_update(stuck_ids)
        return stuck_ids

    def start(self):
        """Start the scheduler along with the stuck-trade sweep."""
        self.scheduler.add_job(
            self.sweep_stuck_trades,
            trigger=IntervalTrigger(seconds=self.sweep_interval_seconds),
            id=SWEEP_JOB_ID,
            name="Stuck trade sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started with {len(self.scheduler.get_jobs())} jobs")

    def shutdown(self):
        """Shut down the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def get_status(self) -> dict:
        """Return current scheduler state for the API."""
        jobs = self.scheduler.get_jobs()
        return {
            "running": self.scheduler.running,
            "job_count": len(jobs),
            "jobs": [
                {
                    "id": j.id,
                    "name": j.name,
                    "next_run": str(j.next_run_time) if getattr(j, "next_run_time", None) else None,
                    "trigger": str(j.trigger),
                }
                for j in jobs
            ],
        }
