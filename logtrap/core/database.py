"""Database engine layer for the log trap engine.

Provides the async engine (aiosqlite locally, asyncpg in deployments) and a
session factory configured with autoflush=False and expire_on_commit=False
for explicit transaction control. Engines are built on demand so that
importing the package never opens a connection.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import settings
from .models import Base


def build_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine for *url* (defaults to ``settings.database_url``)."""
    return create_async_engine(
        url or settings.database_url,
        echo=settings.db_echo if echo is None else echo,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to *engine*."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all log trap tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error.

    Usage::

        async with session_scope(factory) as session:
            session.add(record)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
