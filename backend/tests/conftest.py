"""
Shared test fixtures for CryptoDash backend tests.

Provides reusable fixtures for:
- Async database sessions (temporary SQLite file)
- A scriptable price oracle
- User and order factories
"""

from datetime import datetime
from typing import Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cryptodash.exceptions import PriceUnavailableError
from cryptodash.price_feeds.base import PriceOracle, PriceQuote

# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine(tmp_path):
    """Async SQLite engine on a throwaway file.

    A file (rather than :memory:) gives every session its own connection,
    so separate sessions behave like separate transactions.
    """
    from cryptodash.models import Base

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_maker):
    """Provide an async database session for tests."""
    async with session_maker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Price oracle
# ---------------------------------------------------------------------------


class FakePriceOracle(PriceOracle):
    """Oracle returning whatever price the test last set per symbol"""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices: Dict[str, object] = dict(prices or {})
        self.closes: Dict[str, List[float]] = {}
        self.calls: List[str] = []

    def set_price(self, symbol: str, price):
        """price may be a float or an exception instance to raise"""
        self.prices[symbol] = price

    async def get_current_price(self, symbol: str) -> PriceQuote:
        self.calls.append(symbol)
        value = self.prices.get(symbol)
        if value is None:
            raise PriceUnavailableError(symbol, "no price configured")
        if isinstance(value, Exception):
            raise value
        return PriceQuote(symbol=symbol, price=value, timestamp=datetime.utcnow())

    async def get_daily_closes(self, symbol: str, days: int) -> List[float]:
        if symbol not in self.closes:
            raise PriceUnavailableError(symbol, "no history configured")
        return self.closes[symbol][-days:]


@pytest.fixture
def price_oracle():
    return FakePriceOracle()


# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(session_maker):
    """Create and commit a user (with optional notification settings)"""
    from cryptodash.models import User, UserSettings

    async def _make_user(user_id: int = 1, notify_email: Optional[bool] = None) -> User:
        async with session_maker() as db:
            user = User(id=user_id, username=f"trader{user_id}", email=f"trader{user_id}@example.com")
            db.add(user)
            if notify_email is not None:
                db.add(UserSettings(user_id=user_id, notify_email=notify_email))
            await db.commit()
            return user

    return _make_user


@pytest.fixture
def place_order(session_maker):
    """Place an order through the trade service so the portfolio is updated too"""
    from cryptodash.services.trade_service import OrderRequest, create_order
    from cryptodash.trading_engine.portfolio import PortfolioLocks

    locks = PortfolioLocks()

    async def _place_order(user_id: int = 1, symbol: str = "BTC", side: str = "buy",
                           quantity: float = 1.0, price: float = 40000.0,
                           stop_limit: Optional[float] = None, trailing_stop_pct: Optional[float] = None):
        request = OrderRequest(
            symbol=symbol, side=side, quantity=quantity, price=price,
            stop_limit=stop_limit, trailing_stop_pct=trailing_stop_pct,
        )
        return await create_order(user_id, request, session_maker=session_maker, locks=locks)

    return _place_order
