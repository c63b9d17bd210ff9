"""Trade API for end users: open a bet, list and inspect own trades."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from tradedesk.api.deps import get_current_user, get_runtime
from tradedesk.database import get_session
from tradedesk.engine.runtime import Runtime
from tradedesk.errors import InsufficientBalance, PriceUnavailable
from tradedesk.models.trade import Trade
from tradedesk.models.user import User
from tradedesk.schemas.trade import TradeCreate, TradeRead
from tradedesk.services import trades as trade_service

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.post("", response_model=TradeRead, status_code=201)
async def create_trade(
    data: TradeCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    runtime: Runtime = Depends(get_runtime),
):
    try:
        trade = await trade_service.open_trade(
            session,
            user_id=user.id,
            asset_id=data.asset_id,
            direction=data.direction,
            amount=data.amount,
            duration=data.duration,
            prices=runtime.prices,
        )
    except InsufficientBalance as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PriceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    runtime.scheduler.add_trade_job(trade.id, trade.end_time)
    return trade


@router.get("", response_model=list[TradeRead])
def list_trades(
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    stmt = select(Trade).where(Trade.user_id == user.id).order_by(Trade.created_at.desc())
    if status is not None:
        stmt = stmt.where(Trade.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


@router.get("/{trade_id}", response_model=TradeRead)
def get_trade(
    trade_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    trade = session.get(Trade, trade_id)
    if not trade or trade.user_id != user.id:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade
