"""Request-scoped database sessions for FastAPI routes.

Usage in routes:
    from stockfolio.database.session import DbSession

    @router.get("/health/db")
    async def db_check(db: DbSession) -> dict:
        await db.execute(text("SELECT 1"))
        ...
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockfolio.database.connection import get_session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session committed on success and rolled back on any exception."""
    session_factory = await get_session_factory()

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
