"""Contract for market data sources."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from stockfolio.core.exceptions import (
    AppException,
    ProviderError,
    ProviderRateLimitedError,
    QuoteNotFoundError,
)
from stockfolio.domain.records import CandidateRecord, ModulesRecord, QuoteRecord


@runtime_checkable
class RemoteQuoteSource(Protocol):
    """
    Rate-limited, occasionally failing remote source of market data.

    Methods raise QuoteNotFoundError, ProviderRateLimitedError or
    ProviderError. No retry guarantee is implied; callers throttle.
    """

    async def fetch_quote(self, symbol: str) -> QuoteRecord:
        ...

    async def fetch_extended_modules(self, symbol: str) -> ModulesRecord:
        ...

    async def search(self, keyword: str) -> list[CandidateRecord]:
        ...


def classify_provider_error(symbol: str, exc: BaseException) -> AppException:
    """Map a raw library exception to the provider error taxonomy."""
    if isinstance(exc, AppException):
        return exc

    text = f"{type(exc).__name__}: {exc}"
    lowered = text.lower()
    if "429" in lowered or "too many requests" in lowered or "ratelimit" in lowered.replace(" ", ""):
        return ProviderRateLimitedError(details={"symbol": symbol})
    if "not found" in lowered or "404" in lowered:
        return QuoteNotFoundError(message=f"No data found for {symbol}", details={"symbol": symbol})
    return ProviderError(message=f"Provider request failed for {symbol}: {exc}", details={"symbol": symbol})
