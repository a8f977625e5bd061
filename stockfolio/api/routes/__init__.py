"""API route modules."""

from . import debug, health, portfolio, stocks


__all__ = ["debug", "health", "portfolio", "stocks"]
