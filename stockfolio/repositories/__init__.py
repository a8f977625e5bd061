"""Async repositories over the SQLAlchemy ORM models."""

from .store import EntityUpsertStore, get_entity_store


__all__ = ["EntityUpsertStore", "get_entity_store"]
