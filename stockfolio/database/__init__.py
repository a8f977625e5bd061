"""Database engine, sessions and ORM models."""

from stockfolio.database.connection import (
    close_sqlalchemy_engine,
    get_session,
    init_sqlalchemy_engine,
)
from stockfolio.database.orm import Base


__all__ = [
    "Base",
    "close_sqlalchemy_engine",
    "get_session",
    "init_sqlalchemy_engine",
]
