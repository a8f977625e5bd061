"""yfinance quote fallback used when yahooquery is failing."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import yfinance as yf

from stockfolio.core.config import settings
from stockfolio.core.exceptions import ProviderRateLimitedError, QuoteNotFoundError
from stockfolio.core.logging import get_logger
from stockfolio.core.rate_limiter import RateLimiter, get_provider_limiter
from stockfolio.domain.records import QuoteRecord

from .base import classify_provider_error


logger = get_logger("data_providers.yfinance")

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="yfinance")

# Quote field -> yfinance ``info`` keys, first present wins
_INFO_KEYS: dict[str, tuple[str, ...]] = {
    "longName": ("longName",),
    "shortName": ("shortName",),
    "currency": ("currency",),
    "regularMarketPrice": ("regularMarketPrice", "currentPrice"),
    "regularMarketVolume": ("regularMarketVolume", "volume"),
    "regularMarketPreviousClose": ("regularMarketPreviousClose", "previousClose"),
    "regularMarketOpen": ("regularMarketOpen", "open"),
    "regularMarketDayHigh": ("regularMarketDayHigh", "dayHigh"),
    "regularMarketDayLow": ("regularMarketDayLow", "dayLow"),
    "fiftyTwoWeekHigh": ("fiftyTwoWeekHigh",),
    "fiftyTwoWeekLow": ("fiftyTwoWeekLow",),
    "fiftyDayAverage": ("fiftyDayAverage",),
    "twoHundredDayAverage": ("twoHundredDayAverage",),
    "averageDailyVolume3Month": ("averageDailyVolume3Month", "averageVolume"),
    "averageDailyVolume10Day": ("averageDailyVolume10Day", "averageVolume10days"),
    "marketCap": ("marketCap",),
    "epsTrailingTwelveMonths": ("epsTrailingTwelveMonths", "trailingEps"),
    "epsForward": ("epsForward", "forwardEps"),
    "bookValue": ("bookValue",),
    "trailingPE": ("trailingPE",),
    "forwardPE": ("forwardPE",),
    "priceToBook": ("priceToBook",),
}


def info_to_quote_payload(info: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for target, candidates in _INFO_KEYS.items():
        for key in candidates:
            if info.get(key) is not None:
                payload[target] = info[key]
                break
    return payload


class YFinanceQuoteSource:
    """Quote-only source backed by ``yfinance.Ticker.info``."""

    def __init__(self, limiter: RateLimiter | None = None):
        self._limiter = limiter or get_provider_limiter()

    def _fetch_quote_sync(self, symbol: str) -> QuoteRecord:
        if not self._limiter.acquire_sync(timeout=settings.provider_timeout):
            raise ProviderRateLimitedError(message="Local provider rate limit wait timed out")
        info = yf.Ticker(symbol).info or {}
        payload = info_to_quote_payload(info)
        if not payload.get("regularMarketPrice"):
            raise QuoteNotFoundError(message=f"No data found for {symbol}", details={"symbol": symbol})
        return QuoteRecord.from_yahoo(symbol, payload)

    async def fetch_quote(self, symbol: str) -> QuoteRecord:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(_executor, self._fetch_quote_sync, symbol)
        except Exception as e:
            error = classify_provider_error(symbol, e)
            if error is not e:
                logger.warning(f"yfinance quote failed for {symbol}: {e}")
                raise error from e
            raise
