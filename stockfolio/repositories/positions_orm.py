"""Portfolio position repository - SQLAlchemy ORM async."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from stockfolio.core.exceptions import InvalidInputError
from stockfolio.core.logging import get_logger
from stockfolio.database.connection import get_session
from stockfolio.database.orm import Instrument, PortfolioPosition, RealTimeSnapshot
from stockfolio.domain.positions import MAX_POSITION_QUANTITY, quantize_price, weighted_average_cost

from .base import storage_errors


logger = get_logger("repositories.positions")

UNIQUE_POSITION_CONSTRAINT = "uq_user_positions_user_instrument"


def _position_to_dict(p: PortfolioPosition) -> dict[str, Any]:
    return {
        "id": p.id,
        "user_id": p.user_id,
        "instrument_id": p.instrument_id,
        "quantity": p.quantity,
        "buy_price": p.buy_price,
        "added_at": p.added_at,
        "updated_at": p.updated_at,
    }


def _is_duplicate_position(error: IntegrityError) -> bool:
    constraint = getattr(error.orig, "constraint_name", None) or getattr(
        getattr(error.orig, "__cause__", None), "constraint_name", None
    )
    if constraint is not None:
        return constraint == UNIQUE_POSITION_CONSTRAINT
    return UNIQUE_POSITION_CONSTRAINT in str(error.orig)


async def _merge_once(user_id: int, instrument_id: int, quantity: int, buy_price: Decimal) -> dict[str, Any]:
    now = datetime.now(UTC)
    async with get_session() as session:
        result = await session.execute(
            select(PortfolioPosition)
            .where(
                PortfolioPosition.user_id == user_id,
                PortfolioPosition.instrument_id == instrument_id,
            )
            .with_for_update()
        )
        position = result.scalar_one_or_none()

        if position is None:
            position = PortfolioPosition(
                user_id=user_id,
                instrument_id=instrument_id,
                quantity=quantity,
                buy_price=quantize_price(buy_price),
                added_at=now,
                updated_at=now,
            )
            session.add(position)
        else:
            if position.quantity + quantity > MAX_POSITION_QUANTITY:
                raise InvalidInputError(
                    message=f"Position would exceed {MAX_POSITION_QUANTITY} shares",
                    details={"held": position.quantity, "quantity": quantity},
                )
            position.quantity, position.buy_price = weighted_average_cost(
                position.quantity, position.buy_price, quantity, buy_price
            )
            position.updated_at = now

        await session.commit()
        await session.refresh(position)
        return _position_to_dict(position)


@storage_errors
async def merge_position(
    user_id: int,
    instrument_id: int,
    quantity: int,
    buy_price: Decimal,
) -> dict[str, Any]:
    """
    Add shares to the (user, instrument) position at weighted-average cost.

    The existing row is locked while merging. A concurrent first insert loses
    on the unique constraint and is retried as a merge.
    """
    try:
        return await _merge_once(user_id, instrument_id, quantity, buy_price)
    except IntegrityError as e:
        if not _is_duplicate_position(e):
            raise
        logger.info(f"Concurrent insert for user {user_id} instrument {instrument_id}, merging")
        return await _merge_once(user_id, instrument_id, quantity, buy_price)


@storage_errors
async def list_positions(user_id: int) -> list[dict[str, Any]]:
    """Positions joined with instrument identity and the latest price."""
    async with get_session() as session:
        result = await session.execute(
            select(PortfolioPosition, Instrument, RealTimeSnapshot)
            .join(Instrument, Instrument.id == PortfolioPosition.instrument_id)
            .outerjoin(RealTimeSnapshot, RealTimeSnapshot.instrument_id == Instrument.id)
            .where(PortfolioPosition.user_id == user_id)
            .order_by(PortfolioPosition.added_at)
        )
        rows = []
        for position, instrument, realtime in result.all():
            data = _position_to_dict(position)
            data["stock"] = {
                "id": instrument.id,
                "symbol": instrument.symbol,
                "name": instrument.name,
                "exchange": instrument.exchange,
            }
            data["current_price"] = realtime.price if realtime else None
            data["price_updated_at"] = realtime.updated_at if realtime else None
            rows.append(data)
        return rows


@storage_errors
async def delete_position(user_id: int, instrument_id: int) -> bool:
    async with get_session() as session:
        result = await session.execute(
            delete(PortfolioPosition).where(
                PortfolioPosition.user_id == user_id,
                PortfolioPosition.instrument_id == instrument_id,
            )
        )
        await session.commit()
        return result.rowcount > 0
