"""Quote source with a secondary provider for quotes."""

from __future__ import annotations

from typing import Protocol

from stockfolio.core.exceptions import ProviderError, ProviderRateLimitedError
from stockfolio.core.logging import get_logger
from stockfolio.domain.records import CandidateRecord, ModulesRecord, QuoteRecord

from .base import RemoteQuoteSource


logger = get_logger("data_providers.fallback")


class QuoteOnlySource(Protocol):
    async def fetch_quote(self, symbol: str) -> QuoteRecord:
        ...


class FallbackQuoteSource:
    """
    Delegates to ``primary``; a failed quote is retried on ``secondary``.

    Only unclassified provider failures fall through. NotFound and RateLimited
    are answers, not outages, and are raised as-is.
    """

    def __init__(self, primary: RemoteQuoteSource, secondary: QuoteOnlySource):
        self.primary = primary
        self.secondary = secondary

    async def fetch_quote(self, symbol: str) -> QuoteRecord:
        try:
            return await self.primary.fetch_quote(symbol)
        except ProviderRateLimitedError:
            raise
        except ProviderError as e:
            logger.info(f"Primary quote failed for {symbol} ({e.message}), trying fallback")
            return await self.secondary.fetch_quote(symbol)

    async def fetch_extended_modules(self, symbol: str) -> ModulesRecord:
        return await self.primary.fetch_extended_modules(symbol)

    async def search(self, keyword: str) -> list[CandidateRecord]:
        return await self.primary.search(keyword)
