from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.base import make_session_scope
from app.db.models import Base
from tests.fakes import FakeCache, FakeFetcher, FakeLedger, FakeMessenger


@pytest_asyncio.fixture
async def session_scope():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_scope(engine)
    await engine.dispose()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()
