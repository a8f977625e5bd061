"""Business logic services."""

from . import ledger, refresh, search


__all__ = [
    "ledger",
    "refresh",
    "search",
]
