"""
Yahoo Finance market data through the yahooquery library.

yahooquery is blocking, so every call runs on a small thread pool after
taking a token from the shared provider rate limiter.

Usage:
    from stockfolio.services.data_providers import get_quote_source

    source = get_quote_source()
    quote = await source.fetch_quote("RELIANCE.NS")
    modules = await source.fetch_extended_modules("RELIANCE.NS")
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from yahooquery import Ticker
from yahooquery import search as yahoo_search

from stockfolio.core.config import settings
from stockfolio.core.exceptions import ProviderRateLimitedError, QuoteNotFoundError
from stockfolio.core.logging import get_logger
from stockfolio.core.rate_limiter import RateLimiter, get_provider_limiter
from stockfolio.domain.records import CandidateRecord, ModulesRecord, QuoteRecord

from .base import classify_provider_error
from .resilience import ProviderGuard


logger = get_logger("data_providers.yahooquery")

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="yahooquery")

EXTENDED_MODULES = [
    "summaryProfile",
    "financialData",
    "defaultKeyStatistics",
    "calendarEvents",
]


def _symbol_payload(data: Any, symbol: str) -> Any:
    """yahooquery keys results by symbol; errors come back as strings."""
    if not isinstance(data, dict):
        return data
    return data.get(symbol, data.get(symbol.lower(), data.get(symbol.upper())))


def _raise_for_payload(symbol: str, payload: Any) -> None:
    if isinstance(payload, dict) and payload:
        return
    text = payload if isinstance(payload, str) else ""
    if "too many requests" in text.lower():
        raise ProviderRateLimitedError(details={"symbol": symbol})
    raise QuoteNotFoundError(
        message=f"No data found for {symbol}",
        details={"symbol": symbol, "provider_message": text or None},
    )


class YahooQuerySource:
    """Primary RemoteQuoteSource."""

    def __init__(
        self,
        limiter: RateLimiter | None = None,
        guard: ProviderGuard | None = None,
        timeout: float | None = None,
    ):
        self._limiter = limiter or get_provider_limiter()
        self._guard = guard or ProviderGuard(
            name="yahooquery", max_attempts=settings.provider_max_retries
        )
        self._timeout = timeout or settings.provider_timeout

    def _acquire(self) -> None:
        if not self._limiter.acquire_sync(timeout=self._timeout):
            raise ProviderRateLimitedError(message="Local provider rate limit wait timed out")

    async def _call(self, symbol: str, func: Callable[[str], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await self._guard.run(lambda: loop.run_in_executor(_executor, func, symbol))
        except Exception as e:
            error = classify_provider_error(symbol, e)
            if error is not e:
                logger.warning(f"yahooquery call failed for {symbol}: {e}")
                raise error from e
            raise

    # =========================================================================
    # Quote
    # =========================================================================

    def _fetch_quote_sync(self, symbol: str) -> QuoteRecord:
        self._acquire()
        ticker = Ticker(symbol, asynchronous=False, timeout=int(self._timeout))
        payload = _symbol_payload(ticker.quotes, symbol)
        _raise_for_payload(symbol, payload)
        return QuoteRecord.from_yahoo(symbol, payload)

    async def fetch_quote(self, symbol: str) -> QuoteRecord:
        return await self._call(symbol, self._fetch_quote_sync)

    # =========================================================================
    # Extended modules
    # =========================================================================

    def _fetch_modules_sync(self, symbol: str) -> ModulesRecord:
        self._acquire()
        ticker = Ticker(symbol, asynchronous=False, timeout=int(self._timeout))
        payload = _symbol_payload(ticker.get_modules(EXTENDED_MODULES), symbol)
        _raise_for_payload(symbol, payload)
        return ModulesRecord.from_yahoo(symbol, payload)

    async def fetch_extended_modules(self, symbol: str) -> ModulesRecord:
        return await self._call(symbol, self._fetch_modules_sync)

    # =========================================================================
    # Search
    # =========================================================================

    def _search_sync(self, keyword: str) -> list[CandidateRecord]:
        self._acquire()
        result = yahoo_search(
            keyword,
            country="India",
            quotes_count=settings.search_max_results * 2,
            news_count=0,
        )
        quotes = result.get("quotes", []) if isinstance(result, dict) else []
        candidates = (CandidateRecord.from_yahoo(q) for q in quotes if isinstance(q, dict))
        return [c for c in candidates if c is not None]

    async def search(self, keyword: str) -> list[CandidateRecord]:
        return await self._call(keyword, self._search_sync)
