"""Trade mutations outside of settlement: open, cancel, predetermined override.

Every state change here is a conditional update on ``status = 'active'`` so it
races safely with the settlement coordinator: whichever commits first wins.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import update
from sqlmodel import Session

from tradedesk.errors import InsufficientBalance, TradeNotFound
from tradedesk.models.trade import Trade
from tradedesk.models.user import User
from tradedesk.services.price_reference import PriceReference
from tradedesk.utils.clock import utcnow
from tradedesk.utils.constants import STATUS_ACTIVE, STATUS_CANCELLED, profit_percentage_for

logger = logging.getLogger(__name__)


async def open_trade(
    session: Session,
    user_id: int,
    asset_id: str,
    direction: str,
    amount: Decimal,
    duration: int,
    prices: PriceReference,
) -> Trade:
    """Snapshot the entry price, deduct the stake and persist a new active trade."""
    entry_price = await prices.get_current_price(asset_id)

    # Re-read even if authentication already loaded this user into the session
    user = session.get(User, user_id, with_for_update=True, populate_existing=True)
    if user is None:
        raise TradeNotFound(f"User {user_id} not found")
    if user.balance < amount:
        session.rollback()
        raise InsufficientBalance(f"Balance {user.balance} is below stake {amount}")

    created_at = utcnow()
    trade = Trade(
        user_id=user_id,
        asset_id=asset_id,
        entry_price=entry_price,
        direction=direction,
        amount=amount,
        profit_percentage=profit_percentage_for(duration),
        duration=duration,
        created_at=created_at,
        end_time=created_at + timedelta(seconds=duration),
    )
    user.balance = user.balance - amount
    session.add(user)
    session.add(trade)
    session.commit()
    session.refresh(trade)

    logger.info(
        f"[trade_{trade.id}] Opened {direction} {asset_id} amount={amount} "
        f"entry={entry_price} duration={duration}s user={user_id}"
    )
    return trade


def cancel_trade(session: Session, trade_id: int) -> bool:
    """Cancel an active trade. Returns False if it already reached a terminal state.

    The stake is not refunded.
    """
    if session.get(Trade, trade_id) is None:
        raise TradeNotFound(f"Trade {trade_id} not found")

    stmt = (
        update(Trade)
        .where(Trade.id == trade_id, Trade.status == STATUS_ACTIVE)
        .values(status=STATUS_CANCELLED, closed_at=utcnow())
    )
    res = session.connection().execute(stmt)
    session.commit()
    cancelled = res.rowcount == 1
    if cancelled:
        logger.info(f"[trade_{trade_id}] Cancelled")
    else:
        logger.info(f"[trade_{trade_id}] Cancel ignored, trade already closed")
    return cancelled


def set_predetermined_result(session: Session, trade_id: int, result: str | None) -> bool:
    """Set or clear the admin override while the trade is still active."""
    if session.get(Trade, trade_id) is None:
        raise TradeNotFound(f"Trade {trade_id} not found")

    stmt = (
        update(Trade)
        .where(Trade.id == trade_id, Trade.status == STATUS_ACTIVE)
        .values(predetermined_result=result)
    )
    res = session.connection().execute(stmt)
    session.commit()
    updated = res.rowcount == 1
    if updated:
        logger.info(f"[trade_{trade_id}] Predetermined result set to {result}")
    return updated
