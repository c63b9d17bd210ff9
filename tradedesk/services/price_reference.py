"""Current market prices for settlement and trade entry.

Prices come from Hyperliquid mid prices (``Info.all_mids``). Client-facing asset
ids (e.g. "bitcoin") are mapped to Hyperliquid coin names via
``settings.asset_tickers``; ids that are already coin names pass through.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Protocol

from hyperliquid.info import Info

from tradedesk.config import settings
from tradedesk.errors import PriceUnavailable

logger = logging.getLogger(__name__)


class PriceReference(Protocol):
    async def get_current_price(self, asset_id: str) -> Decimal: ...


def _to_hl_coin(asset_id: str, tickers: dict[str, str]) -> str:
    """Map an asset id to a Hyperliquid coin name.

    Hyperliquid uses 'kX' instead of '1000X' (e.g. kBONK, kPEPE).
    """
    coin = tickers.get(asset_id.lower(), asset_id.upper())
    if coin.startswith("1000"):
        return "k" + coin[4:]
    return coin


class HyperliquidPriceReference:
    """Price reference backed by Hyperliquid's public info endpoint."""

    def __init__(self, base_url: str | None = None, tickers: dict[str, str] | None = None):
        self.base_url = base_url or settings.hyperliquid_base_url
        self.tickers = tickers if tickers is not None else settings.asset_tickers
        self._info: Info | None = None

    def _fetch_mids(self) -> dict[str, str]:
        # Info() pulls exchange metadata on construction, so build it lazily
        if self._info is None:
            self._info = Info(self.base_url, skip_ws=True)
        return self._info.all_mids()

    async def get_current_price(self, asset_id: str) -> Decimal:
        coin = _to_hl_coin(asset_id, self.tickers)
        try:
            # all_mids is synchronous; run in executor to avoid blocking
            mids = await asyncio.get_running_loop().run_in_executor(None, self._fetch_mids)
        except Exception as e:
            logger.error(f"Error fetching mids for {asset_id} ({coin}): {e}")
            raise PriceUnavailable(asset_id, str(e)) from e

        raw = mids.get(coin)
        if raw is None:
            raise PriceUnavailable(asset_id, f"no mid price for {coin}")
        try:
            price = Decimal(str(raw))
        except InvalidOperation as e:
            raise PriceUnavailable(asset_id, f"malformed price {raw!r}") from e
        if price <= 0:
            raise PriceUnavailable(asset_id, f"non-positive price {price}")
        return price
