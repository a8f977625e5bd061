"""PostgreSQL connection management through the SQLAlchemy async engine.

The engine runs on the asyncpg driver. Sessions are handed out by
``get_session()``; request handlers use the ``DbSession`` dependency from
``stockfolio.database.session`` instead.

Usage:
    from stockfolio.database.connection import get_session
    from stockfolio.database.orm import Instrument

    async with get_session() as session:
        stock = await session.get(Instrument, 1)
        stock.is_active = False
        await session.commit()
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stockfolio.core.config import settings
from stockfolio.core.logging import get_logger


logger = get_logger("database")


def get_async_database_url(url: str) -> str:
    """Convert ``postgresql://`` URLs to the asyncpg dialect.

    Shared with ``alembic/env.py`` so both resolve the same URL.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_sqlalchemy_engine() -> AsyncEngine:
    """Initialize the async engine and session factory."""
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    try:
        _engine = create_async_engine(
            get_async_database_url(settings.database_url),
            pool_size=settings.db_pool_min_size,
            max_overflow=settings.db_pool_max_size - settings.db_pool_min_size,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={"server_settings": {"application_name": "stockfolio", "timezone": "UTC"}},
        )
        _session_factory = async_sessionmaker(
            bind=_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("SQLAlchemy async engine initialized")
        return _engine
    except Exception as e:
        logger.error(f"SQLAlchemy engine init failed: {e}")
        raise


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        await init_sqlalchemy_engine()
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get an async session; rolled back if the block raises."""
    factory = await get_session_factory()

    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def ping() -> bool:
    """True if ``SELECT 1`` succeeds."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False


async def close_sqlalchemy_engine() -> None:
    """Dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("SQLAlchemy engine closed")
