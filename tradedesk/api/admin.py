"""Admin trade API — overview, predetermined results, cancellation, manual settlement."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from tradedesk.api.deps import get_runtime, require_admin
from tradedesk.config import settings
from tradedesk.database import get_session
from tradedesk.engine.runtime import Runtime
from tradedesk.engine.scheduler import find_stuck_trades
from tradedesk.errors import InvalidTradeState, PriceUnavailable, TradeNotFound
from tradedesk.models.trade import Trade
from tradedesk.schemas.trade import PredeterminedUpdate, SettleResponse, TradeRead
from tradedesk.services import trades as trade_service

router = APIRouter(prefix="/api/admin/trades", tags=["admin"], dependencies=[Depends(require_admin)])


def _get_or_404(session: Session, trade_id: int) -> Trade:
    trade = session.get(Trade, trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade


@router.get("", response_model=list[TradeRead])
def list_all_trades(
    status: str | None = None,
    user_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(Trade).order_by(Trade.created_at.desc())
    if status is not None:
        stmt = stmt.where(Trade.status == status)
    if user_id is not None:
        stmt = stmt.where(Trade.user_id == user_id)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


@router.get("/stuck", response_model=list[TradeRead])
def stuck_trades(session: Session = Depends(get_session)):
    """Active trades past their end time that need manual settlement."""
    return find_stuck_trades(session.get_bind(), settings.stuck_trade_grace_seconds)


@router.patch("/{trade_id}/predetermined", response_model=TradeRead)
def set_predetermined(
    trade_id: int,
    body: PredeterminedUpdate,
    session: Session = Depends(get_session),
):
    try:
        updated = trade_service.set_predetermined_result(session, trade_id, body.predetermined_result)
    except TradeNotFound:
        raise HTTPException(status_code=404, detail="Trade not found")
    if not updated:
        raise HTTPException(status_code=409, detail="Trade is no longer active")
    return _get_or_404(session, trade_id)


@router.post("/{trade_id}/cancel", response_model=TradeRead)
def cancel_trade(
    trade_id: int,
    session: Session = Depends(get_session),
    runtime: Runtime = Depends(get_runtime),
):
    try:
        cancelled = trade_service.cancel_trade(session, trade_id)
    except TradeNotFound:
        raise HTTPException(status_code=404, detail="Trade not found")
    if not cancelled:
        raise HTTPException(status_code=409, detail="Trade is no longer active")
    runtime.scheduler.remove_trade_job(trade_id)
    return _get_or_404(session, trade_id)


@router.post("/{trade_id}/settle", response_model=SettleResponse)
async def settle_trade(
    trade_id: int,
    session: Session = Depends(get_session),
    runtime: Runtime = Depends(get_runtime),
):
    """Manually settle a trade (operator recovery). Idempotent."""
    _get_or_404(session, trade_id)
    try:
        outcome = await runtime.coordinator.settle(trade_id)
    except PriceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except InvalidTradeState as e:
        raise HTTPException(status_code=422, detail=str(e))

    if outcome is not None:
        runtime.scheduler.remove_trade_job(trade_id)
        return SettleResponse(
            trade_id=trade_id,
            settled=True,
            result=outcome.result,
            payout=outcome.payout,
            status="completed",
        )

    session.expire_all()
    trade = _get_or_404(session, trade_id)
    return SettleResponse(trade_id=trade_id, settled=False, result=trade.result, status=trade.status)
