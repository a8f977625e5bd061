"""Instrument repository - SQLAlchemy ORM async."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import desc, or_, select, update
from sqlalchemy.dialects.postgresql import insert

from stockfolio.database.connection import get_session
from stockfolio.database.orm import Instrument

from .base import storage_errors


def _instrument_to_dict(i: Instrument) -> dict[str, Any]:
    return {
        "id": i.id,
        "symbol": i.symbol,
        "exchange": i.exchange,
        "name": i.name,
        "sector": i.sector,
        "industry": i.industry,
        "currency": i.currency,
        "is_active": i.is_active,
        "last_refreshed_at": i.last_refreshed_at,
        "created_at": i.created_at,
    }


@storage_errors
async def get_instrument_by_symbol(symbol: str) -> dict[str, Any] | None:
    """Symbols carry their exchange suffix, so the symbol alone is unique."""
    async with get_session() as session:
        result = await session.execute(
            select(Instrument).where(Instrument.symbol == symbol.upper()).limit(1)
        )
        instrument = result.scalar_one_or_none()
        return _instrument_to_dict(instrument) if instrument else None


@storage_errors
async def create_instrument(
    symbol: str,
    exchange: str,
    name: str,
    *,
    sector: str | None = None,
    industry: str | None = None,
    currency: str = "INR",
    refreshed_at: datetime | None = None,
) -> dict[str, Any]:
    """Insert an instrument, or refresh its descriptive fields if it already exists."""
    values = {
        "name": name,
        "sector": sector,
        "industry": industry,
        "currency": currency,
        "is_active": True,
        "last_refreshed_at": refreshed_at,
    }
    async with get_session() as session:
        stmt = (
            insert(Instrument)
            .values(symbol=symbol.upper(), exchange=exchange, **values)
            .on_conflict_do_update(
                constraint="uq_stocks_symbol_exchange",
                set_={k: v for k, v in values.items() if v is not None},
            )
            .returning(Instrument)
        )
        result = await session.execute(stmt)
        instrument = result.scalar_one()
        await session.commit()
        return _instrument_to_dict(instrument)


@storage_errors
async def update_instrument(instrument_id: int, **fields: Any) -> dict[str, Any] | None:
    """Update descriptive fields; None values are left untouched."""
    values = {k: v for k, v in fields.items() if v is not None}
    async with get_session() as session:
        instrument = await session.get(Instrument, instrument_id)
        if instrument is None:
            return None
        for key, value in values.items():
            setattr(instrument, key, value)
        await session.commit()
        await session.refresh(instrument)
        return _instrument_to_dict(instrument)


@storage_errors
async def touch_instrument(instrument_id: int, refreshed_at: datetime | None = None) -> None:
    async with get_session() as session:
        await session.execute(
            update(Instrument)
            .where(Instrument.id == instrument_id)
            .values(last_refreshed_at=refreshed_at or datetime.now(UTC))
        )
        await session.commit()


@storage_errors
async def list_active_instruments() -> list[dict[str, Any]]:
    async with get_session() as session:
        result = await session.execute(
            select(Instrument).where(Instrument.is_active == True).order_by(Instrument.id)
        )
        return [_instrument_to_dict(i) for i in result.scalars().all()]


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@storage_errors
async def search_instruments(query: str, limit: int = 10) -> list[dict[str, Any]]:
    """Name or symbol substring match, symbol hits first."""
    pattern = f"%{escape_like(query.strip())}%"
    async with get_session() as session:
        result = await session.execute(
            select(Instrument)
            .where(
                Instrument.is_active == True,
                or_(
                    Instrument.name.ilike(pattern, escape="\\"),
                    Instrument.symbol.ilike(pattern.upper(), escape="\\"),
                ),
            )
            .order_by(Instrument.symbol.ilike(pattern.upper(), escape="\\").desc(), Instrument.symbol)
            .limit(limit)
        )
        return [_instrument_to_dict(i) for i in result.scalars().all()]


@storage_errors
async def recent_instruments(limit: int = 10) -> list[dict[str, Any]]:
    """Most recently refreshed instruments first."""
    async with get_session() as session:
        result = await session.execute(
            select(Instrument)
            .order_by(desc(Instrument.last_refreshed_at).nulls_last())
            .limit(limit)
        )
        return [_instrument_to_dict(i) for i in result.scalars().all()]

