"""User repository - SQLAlchemy ORM async."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.dialects.postgresql import insert

from stockfolio.database.connection import get_session
from stockfolio.database.orm import AppUser

from .base import storage_errors


def _user_to_dict(u: AppUser) -> dict[str, Any]:
    return {
        "id": u.id,
        "external_id": u.external_id,
        "email": u.email,
        "username": u.username,
        "is_active": u.is_active,
        "last_login": u.last_login,
        "created_at": u.created_at,
    }


@storage_errors
async def get_or_create_user(
    external_id: str,
    *,
    email: str | None = None,
    username: str | None = None,
) -> dict[str, Any]:
    """Upsert the identity provider's user, stamping ``last_login``."""
    now = datetime.now(UTC)
    updates: dict[str, Any] = {"last_login": now}
    if email:
        updates["email"] = email
    if username:
        updates["username"] = username

    async with get_session() as session:
        stmt = (
            insert(AppUser)
            .values(
                external_id=external_id,
                email=email,
                username=username or (email.split("@")[0] if email else None),
                is_active=True,
                last_login=now,
                created_at=now,
            )
            .on_conflict_do_update(index_elements=["external_id"], set_=updates)
            .returning(AppUser)
        )
        result = await session.execute(stmt)
        user = result.scalar_one()
        await session.commit()
        return _user_to_dict(user)
