"""Shared fixtures: in-memory store, a funded user, a trade factory and a fake price feed."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import tradedesk.models  # noqa: F401
from tradedesk.errors import PriceUnavailable
from tradedesk.models.trade import Trade
from tradedesk.models.user import User
from tradedesk.utils.clock import utcnow


class FakePrices:
    """Price reference returning fixed quotes; unknown assets are unavailable."""

    def __init__(self, prices: dict[str, Decimal] | None = None):
        self.prices = dict(prices or {})
        self.calls: list[str] = []
        self.before_return = None  # optional hook run before the price is handed back

    async def get_current_price(self, asset_id: str) -> Decimal:
        self.calls.append(asset_id)
        if asset_id not in self.prices:
            raise PriceUnavailable(asset_id, "not quoted")
        if self.before_return is not None:
            self.before_return()
        return self.prices[asset_id]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def prices():
    return FakePrices({"bitcoin": Decimal("105.00")})


@pytest.fixture
def user(engine) -> User:
    with Session(engine) as session:
        u = User(username="alice", hashed_password="x", balance=Decimal("1000.00"))
        session.add(u)
        session.commit()
        session.refresh(u)
        return u


@pytest.fixture
def make_trade(engine, user):
    """Insert a trade; by default an expired 'up' bet of 50.00 at 100.00 paying 80%."""

    def _make(**overrides) -> Trade:
        created_at = overrides.pop("created_at", utcnow() - timedelta(seconds=61))
        duration = overrides.pop("duration", 60)
        fields = {
            "user_id": user.id,
            "asset_id": "bitcoin",
            "entry_price": Decimal("100.00"),
            "direction": "up",
            "amount": Decimal("50.00"),
            "profit_percentage": Decimal("80"),
            "duration": duration,
            "created_at": created_at,
            "end_time": created_at + timedelta(seconds=duration),
        }
        fields.update(overrides)
        with Session(engine) as session:
            trade = Trade(**fields)
            session.add(trade)
            session.commit()
            session.refresh(trade)
            return trade

    return _make


class Store:
    """Fresh reads straight from the database."""

    def __init__(self, engine):
        self.engine = engine

    def trade(self, trade_id: int) -> Trade:
        with Session(self.engine) as session:
            return session.get(Trade, trade_id)

    def balance(self, user_id: int) -> Decimal:
        with Session(self.engine) as session:
            return session.get(User, user_id).balance


@pytest.fixture
def store(engine) -> Store:
    return Store(engine)
