"""Helpers shared by the ORM repositories."""

from __future__ import annotations

import functools
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import BigInteger
from sqlalchemy.exc import SQLAlchemyError

from stockfolio.core.exceptions import StorageError
from stockfolio.core.logging import get_logger


logger = get_logger("repositories")

T = TypeVar("T")


def storage_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise SQLAlchemy failures as StorageError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"{func.__module__}.{func.__name__} failed: {e}")
            raise StorageError(
                message=f"Storage operation failed: {func.__name__}",
                details={"operation": func.__name__},
            ) from e

    return wrapper


def row_to_wire(row: Any, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    """
    Column values of an ORM row, safe to put on the wire.

    BIGINT columns and decimals become strings so clients never lose precision;
    datetimes and dates stay native for the JSON encoder.
    """
    data: dict[str, Any] = {}
    for column in row.__table__.columns:
        if column.key in exclude:
            continue
        value = getattr(row, column.key)
        if value is None:
            data[column.key] = None
        elif isinstance(value, Decimal):
            data[column.key] = str(value)
        elif isinstance(column.type, BigInteger) and isinstance(value, int):
            data[column.key] = str(value)
        else:
            data[column.key] = value
    return data
