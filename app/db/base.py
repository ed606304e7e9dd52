from __future__ import annotations

"""Database engine and async session scope factory."""

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


SessionScope = Callable[[], AsyncContextManager[AsyncSession]]


def create_engine(dsn: str) -> AsyncEngine:
    return create_async_engine(dsn, future=True, pool_pre_ping=True)


def make_session_scope(engine: AsyncEngine) -> SessionScope:
    """Return a callable producing transactional session scopes bound to engine."""

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def session_scope() -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""

        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return session_scope
