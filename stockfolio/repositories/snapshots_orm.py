"""Snapshot repository - one row per (instrument, category), upserted in place."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from stockfolio.database.connection import get_session
from stockfolio.database.orm import (
    AnalystRatingSnapshot,
    FinancialSnapshot,
    FundamentalSnapshot,
    IntradaySnapshot,
    RealTimeSnapshot,
    StatisticsSnapshot,
)
from stockfolio.domain.snapshots import SnapshotCategory

from .base import row_to_wire, storage_errors


SNAPSHOT_MODELS = {
    SnapshotCategory.REALTIME: RealTimeSnapshot,
    SnapshotCategory.INTRADAY: IntradaySnapshot,
    SnapshotCategory.FUNDAMENTALS: FundamentalSnapshot,
    SnapshotCategory.FINANCIALS: FinancialSnapshot,
    SnapshotCategory.STATISTICS: StatisticsSnapshot,
    SnapshotCategory.RATINGS: AnalystRatingSnapshot,
}


def snapshot_to_dict(row: Any) -> dict[str, Any]:
    return row_to_wire(row, exclude=("id",))


@storage_errors
async def upsert_snapshot(
    category: SnapshotCategory,
    instrument_id: int,
    fields: dict[str, Any],
    updated_at: datetime | None = None,
) -> dict[str, Any]:
    """Update the instrument's row for ``category`` if present, else insert it."""
    model = SNAPSHOT_MODELS[SnapshotCategory(category)]
    now = updated_at or datetime.now(UTC)
    columns = {c.key for c in model.__table__.columns}
    values = {k: v for k, v in fields.items() if k in columns and k not in ("id", "instrument_id")}
    values["updated_at"] = now

    async with get_session() as session:
        stmt = (
            insert(model)
            .values(instrument_id=instrument_id, **values)
            .on_conflict_do_update(index_elements=["instrument_id"], set_=values)
            .returning(model)
        )
        result = await session.execute(stmt)
        row = result.scalar_one()
        await session.commit()
        return snapshot_to_dict(row)


@storage_errors
async def oldest_snapshot_timestamp(category: SnapshotCategory) -> datetime | None:
    model = SNAPSHOT_MODELS[SnapshotCategory(category)]
    async with get_session() as session:
        result = await session.execute(select(func.min(model.updated_at)))
        return result.scalar_one_or_none()


@storage_errors
async def latest_snapshot_timestamp(category: SnapshotCategory) -> datetime | None:
    model = SNAPSHOT_MODELS[SnapshotCategory(category)]
    async with get_session() as session:
        result = await session.execute(select(func.max(model.updated_at)))
        return result.scalar_one_or_none()


@storage_errors
async def get_snapshot_bundle(instrument_id: int) -> dict[str, dict[str, Any] | None]:
    """Every category's row for one instrument, keyed by category value."""
    bundle: dict[str, dict[str, Any] | None] = {}
    async with get_session() as session:
        for category, model in SNAPSHOT_MODELS.items():
            result = await session.execute(
                select(model).where(model.instrument_id == instrument_id)
            )
            row = result.scalar_one_or_none()
            bundle[category.value] = snapshot_to_dict(row) if row else None
    return bundle
