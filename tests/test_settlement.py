"""Tests for the settlement coordinator against an in-memory store."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlmodel import Session

from tradedesk.engine.settlement import SettlementCoordinator
from tradedesk.errors import InvalidTradeState, PriceUnavailable
from tradedesk.schemas.events import BalanceEvent, SettlementEvent
from tradedesk.services import trades as trade_service
from tradedesk.services.notifications import NotificationFanout
from tradedesk.utils.clock import as_utc


@pytest.fixture
def fanout():
    return AsyncMock(spec=NotificationFanout)


@pytest.fixture
def coordinator(engine, prices, fanout):
    return SettlementCoordinator(engine, prices, fanout)


# ---------------------------------------------------------------------------
# 1. Outcomes and balance effect
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_winning_trade_credits_stake_plus_profit(coordinator, make_trade, store, user):
    trade = make_trade()

    outcome = await coordinator.settle(trade.id)

    assert outcome.result == "win"
    assert outcome.payout == Decimal("90.00")
    assert store.balance(user.id) == Decimal("1090.00")

    row = store.trade(trade.id)
    assert row.status == "completed"
    assert row.result == "win"
    assert row.closed_at is not None
    assert as_utc(row.closed_at) >= as_utc(row.created_at)


@pytest.mark.asyncio
async def test_losing_trade_leaves_balance(coordinator, make_trade, prices, store, user):
    prices.prices["bitcoin"] = Decimal("95.00")
    trade = make_trade()

    outcome = await coordinator.settle(trade.id)

    assert outcome.result == "lose"
    assert outcome.payout == 0
    assert store.balance(user.id) == Decimal("1000.00")
    assert store.trade(trade.id).result == "lose"


@pytest.mark.asyncio
async def test_tie_settles_as_loss(coordinator, make_trade, prices, store):
    prices.prices["bitcoin"] = Decimal("100.00")
    trade = make_trade()

    outcome = await coordinator.settle(trade.id)

    assert outcome.result == "lose"
    assert store.trade(trade.id).status == "completed"


@pytest.mark.asyncio
async def test_predetermined_result_skips_price_fetch(coordinator, make_trade, prices, store, user):
    prices.prices["bitcoin"] = Decimal("500.00")
    trade = make_trade(predetermined_result="lose")

    outcome = await coordinator.settle(trade.id)

    assert outcome.result == "lose"
    assert prices.calls == []
    assert store.balance(user.id) == Decimal("1000.00")


# ---------------------------------------------------------------------------
# 2. Idempotency and races
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_second_settle_is_noop(coordinator, make_trade, store, user, fanout):
    trade = make_trade()

    first = await coordinator.settle(trade.id)
    second = await coordinator.settle(trade.id)

    assert first is not None
    assert second is None
    assert store.balance(user.id) == Decimal("1090.00")
    # one trade-update plus one balance-update, from the first call only
    assert fanout.notify.await_count == 2


@pytest.mark.asyncio
async def test_cancelled_trade_is_not_settled(coordinator, engine, make_trade, store, user):
    trade = make_trade()
    with Session(engine) as session:
        assert trade_service.cancel_trade(session, trade.id) is True

    assert await coordinator.settle(trade.id) is None
    row = store.trade(trade.id)
    assert row.status == "cancelled"
    assert row.result is None
    assert store.balance(user.id) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_cancel_after_settle_is_rejected(coordinator, engine, make_trade, store):
    trade = make_trade()
    await coordinator.settle(trade.id)

    with Session(engine) as session:
        assert trade_service.cancel_trade(session, trade.id) is False
    assert store.trade(trade.id).status == "completed"


@pytest.mark.asyncio
async def test_cancel_during_price_fetch_wins_the_race(coordinator, engine, make_trade, prices, store, user, fanout):
    trade = make_trade()

    def cancel_now():
        with Session(engine) as session:
            trade_service.cancel_trade(session, trade.id)

    prices.before_return = cancel_now

    assert await coordinator.settle(trade.id) is None
    row = store.trade(trade.id)
    assert row.status == "cancelled"
    assert row.result is None
    assert store.balance(user.id) == Decimal("1000.00")
    fanout.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_override_set_during_price_fetch_is_honoured(coordinator, engine, make_trade, prices, store):
    prices.prices["bitcoin"] = Decimal("150.00")  # would win on price
    trade = make_trade()

    def force_loss():
        prices.before_return = None
        with Session(engine) as session:
            trade_service.set_predetermined_result(session, trade.id, "lose")

    prices.before_return = force_loss

    outcome = await coordinator.settle(trade.id)

    assert outcome.result == "lose"
    assert store.trade(trade.id).result == "lose"


@pytest.mark.asyncio
async def test_concurrent_settle_calls_settle_once(coordinator, make_trade, prices, store, user):
    trade = make_trade()
    gate = asyncio.Event()
    original = prices.get_current_price

    async def slow_price(asset_id):
        await gate.wait()
        return await original(asset_id)

    prices.get_current_price = slow_price

    first = asyncio.create_task(coordinator.settle(trade.id))
    await asyncio.sleep(0)
    second = await coordinator.settle(trade.id)
    gate.set()
    outcome = await first

    assert second is None
    assert outcome.result == "win"
    assert store.balance(user.id) == Decimal("1090.00")


# ---------------------------------------------------------------------------
# 3. Failures leave the trade active
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_price_unavailable_leaves_trade_active(coordinator, make_trade, store, user):
    trade = make_trade(asset_id="unlisted-coin")

    with pytest.raises(PriceUnavailable):
        await coordinator.settle(trade.id)

    row = store.trade(trade.id)
    assert row.status == "active"
    assert row.result is None
    assert store.balance(user.id) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_malformed_trade_is_left_untouched(coordinator, make_trade, store):
    trade = make_trade(direction="sideways")

    with pytest.raises(InvalidTradeState):
        await coordinator.settle(trade.id)
    assert store.trade(trade.id).status == "active"


@pytest.mark.asyncio
async def test_missing_owner_rolls_back_status(coordinator, make_trade, store):
    trade = make_trade(user_id=9999)

    with pytest.raises(InvalidTradeState, match="owner"):
        await coordinator.settle(trade.id)

    row = store.trade(trade.id)
    assert row.status == "active"
    assert row.result is None


@pytest.mark.asyncio
async def test_unknown_trade_raises(coordinator):
    with pytest.raises(InvalidTradeState, match="not found"):
        await coordinator.settle(424242)


# ---------------------------------------------------------------------------
# 4. Notification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_win_publishes_settlement_and_balance_events(coordinator, make_trade, fanout, user):
    trade = make_trade()

    await coordinator.settle(trade.id)

    calls = fanout.notify.await_args_list
    assert calls[0].args == (
        user.id,
        SettlementEvent(trade_id=trade.id, user_id=user.id, result="win"),
    )
    uid, balance_event = calls[1].args
    assert uid == user.id
    assert isinstance(balance_event, BalanceEvent)
    assert balance_event.balance == Decimal("1090.00")


@pytest.mark.asyncio
async def test_loss_publishes_only_settlement_event(coordinator, make_trade, prices, fanout):
    prices.prices["bitcoin"] = Decimal("1")
    trade = make_trade()

    await coordinator.settle(trade.id)

    fanout.notify.assert_awaited_once()
    event = fanout.notify.await_args.args[1]
    assert event.to_message() == {
        "type": "trade-update",
        "data": {"tradeId": trade.id, "userId": trade.user_id, "result": "lose", "status": "completed"},
    }
