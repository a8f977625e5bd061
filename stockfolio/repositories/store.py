"""Storage facade consumed by the refresh orchestrator.

Refresh logic only needs a handful of operations. Grouping them behind one
object lets tests hand the orchestrator an in-memory store instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from stockfolio.domain.snapshots import SnapshotCategory

from . import instruments_orm, snapshots_orm


class EntityUpsertStore:
    """PostgreSQL-backed store; every failure surfaces as StorageError."""

    async def list_active_instruments(self) -> list[dict[str, Any]]:
        return await instruments_orm.list_active_instruments()

    async def get_instrument_by_symbol(self, symbol: str) -> dict[str, Any] | None:
        return await instruments_orm.get_instrument_by_symbol(symbol)

    async def create_instrument(self, symbol: str, exchange: str, name: str, **fields: Any) -> dict[str, Any]:
        return await instruments_orm.create_instrument(symbol, exchange, name, **fields)

    async def update_instrument(self, instrument_id: int, **fields: Any) -> dict[str, Any] | None:
        return await instruments_orm.update_instrument(instrument_id, **fields)

    async def touch_instrument(self, instrument_id: int, refreshed_at: datetime | None = None) -> None:
        await instruments_orm.touch_instrument(instrument_id, refreshed_at)

    async def upsert_snapshot(
        self,
        category: SnapshotCategory,
        instrument_id: int,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        return await snapshots_orm.upsert_snapshot(category, instrument_id, fields)

    async def oldest_snapshot_timestamp(self, category: SnapshotCategory) -> datetime | None:
        return await snapshots_orm.oldest_snapshot_timestamp(category)

    async def get_snapshot_bundle(self, instrument_id: int) -> dict[str, dict[str, Any] | None]:
        return await snapshots_orm.get_snapshot_bundle(instrument_id)


_store: EntityUpsertStore | None = None


def get_entity_store() -> EntityUpsertStore:
    global _store
    if _store is None:
        _store = EntityUpsertStore()
    return _store
