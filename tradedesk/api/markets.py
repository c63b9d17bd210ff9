"""Market price API."""

from fastapi import APIRouter, Depends, HTTPException

from tradedesk.api.deps import get_current_user, get_runtime
from tradedesk.engine.runtime import Runtime
from tradedesk.errors import PriceUnavailable

router = APIRouter(prefix="/api/markets", tags=["markets"], dependencies=[Depends(get_current_user)])


@router.get("/{asset_id}/price")
async def current_price(asset_id: str, runtime: Runtime = Depends(get_runtime)):
    try:
        price = await runtime.prices.get_current_price(asset_id)
    except PriceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"asset_id": asset_id, "price": str(price)}
