"""Market data providers.

Usage:
    from stockfolio.services.data_providers import get_quote_source

    source = get_quote_source()
    quote = await source.fetch_quote("SBIN.NS")
"""

from __future__ import annotations

from stockfolio.core.config import settings

from .base import RemoteQuoteSource, classify_provider_error
from .fallback import FallbackQuoteSource
from .resilience import CircuitBreaker, CircuitOpenError, ProviderGuard
from .yahooquery_source import YahooQuerySource
from .yfinance_source import YFinanceQuoteSource


_instance: RemoteQuoteSource | None = None


def get_quote_source() -> RemoteQuoteSource:
    """Process-wide source: yahooquery, with yfinance quote fallback if enabled."""
    global _instance
    if _instance is None:
        primary = YahooQuerySource()
        if settings.provider_fallback_enabled:
            _instance = FallbackQuoteSource(primary, YFinanceQuoteSource())
        else:
            _instance = primary
    return _instance


__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "FallbackQuoteSource",
    "ProviderGuard",
    "RemoteQuoteSource",
    "YFinanceQuoteSource",
    "YahooQuerySource",
    "classify_provider_error",
    "get_quote_source",
]
