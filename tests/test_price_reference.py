"""Tests for the Hyperliquid-backed price reference."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from tradedesk.errors import PriceUnavailable
from tradedesk.services.price_reference import HyperliquidPriceReference, _to_hl_coin


def _reference(mids=None, error=None) -> HyperliquidPriceReference:
    ref = HyperliquidPriceReference(base_url="https://mock", tickers={"bitcoin": "BTC"})
    info = MagicMock()
    if error is not None:
        info.all_mids.side_effect = error
    else:
        info.all_mids.return_value = mids or {}
    # Skip Info() construction, which would hit the network
    ref._info = info
    return ref


class TestCoinMapping:
    def test_known_asset_id(self):
        assert _to_hl_coin("bitcoin", {"bitcoin": "BTC"}) == "BTC"

    def test_asset_id_is_case_insensitive(self):
        assert _to_hl_coin("Bitcoin", {"bitcoin": "BTC"}) == "BTC"

    def test_unknown_id_passes_through_as_ticker(self):
        assert _to_hl_coin("sol", {}) == "SOL"

    def test_thousand_prefix_uses_k(self):
        assert _to_hl_coin("1000PEPE", {}) == "kPEPE"


@pytest.mark.asyncio
async def test_price_is_exact_decimal():
    ref = _reference({"BTC": "67123.45"})
    price = await ref.get_current_price("bitcoin")
    assert price == Decimal("67123.45")
    assert isinstance(price, Decimal)


@pytest.mark.asyncio
async def test_missing_coin_is_unavailable():
    ref = _reference({"ETH": "3000"})
    with pytest.raises(PriceUnavailable, match="BTC"):
        await ref.get_current_price("bitcoin")


@pytest.mark.asyncio
async def test_feed_error_is_unavailable():
    ref = _reference(error=ConnectionError("timeout"))
    with pytest.raises(PriceUnavailable) as exc:
        await ref.get_current_price("bitcoin")
    assert exc.value.asset_id == "bitcoin"


@pytest.mark.asyncio
async def test_non_positive_price_is_unavailable():
    ref = _reference({"BTC": "0"})
    with pytest.raises(PriceUnavailable):
        await ref.get_current_price("bitcoin")


@pytest.mark.asyncio
async def test_malformed_price_is_unavailable():
    ref = _reference({"BTC": "n/a"})
    with pytest.raises(PriceUnavailable, match="malformed"):
        await ref.get_current_price("bitcoin")
