"""Typed records for market data provider responses.

Provider payloads are loosely shaped dicts. They are narrowed here, at the
ingestion boundary, into records whose fields are all optional so partial
data never reaches the refresh logic as a KeyError.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field


MIN_PROVIDER_YEAR = 1900
MAX_PROVIDER_YEAR = 2100


# =============================================================================
# Value narrowing
# =============================================================================


def _unwrap(value: Any) -> Any:
    # Yahoo sometimes wraps numbers as {"raw": 1.0, "fmt": "1.00"}
    if isinstance(value, dict):
        return value.get("raw")
    return value


def safe_float(value: Any) -> float | None:
    value = _unwrap(value)
    if value is None or isinstance(value, (str, bool)):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


def safe_int(value: Any) -> int | None:
    f = safe_float(value)
    if f is None:
        return None
    return int(f)


def safe_str(value: Any) -> str | None:
    value = _unwrap(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_decimal(value: Any) -> Decimal | None:
    """Decimal built from the float's repr, so 0.1 stays 0.1."""
    f = safe_float(value)
    if f is None:
        return None
    try:
        return Decimal(str(f))
    except InvalidOperation:
        return None


def safe_date_from_timestamp(timestamp: Any) -> date | None:
    """
    Calendar date (UTC) for an epoch timestamp.

    Values whose year falls outside [1900, 2100] are corrupt upstream data and
    come back as None. Millisecond epochs are detected and scaled.
    """
    seconds = safe_float(timestamp)
    if seconds is None:
        return None
    if abs(seconds) > 1e11:
        seconds /= 1000.0
    try:
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    if not MIN_PROVIDER_YEAR <= moment.year <= MAX_PROVIDER_YEAR:
        return None
    return moment.date()


def parse_provider_date(value: Any) -> date | None:
    """Accept epochs, ISO strings, datetimes or a list of those (first wins)."""
    if isinstance(value, (list, tuple)):
        return parse_provider_date(value[0]) if value else None
    value = _unwrap(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            try:
                parsed = date.fromisoformat(text[:10])
            except ValueError:
                return None
    else:
        return safe_date_from_timestamp(value)

    if not MIN_PROVIDER_YEAR <= parsed.year <= MAX_PROVIDER_YEAR:
        return None
    return parsed


# =============================================================================
# Quote
# =============================================================================


class QuoteRecord(BaseModel):
    """Live quote fields for one symbol."""

    symbol: str
    long_name: str | None = None
    short_name: str | None = None
    currency: str | None = None

    price: float | None = Field(None, description="Regular market price")
    volume: int | None = None
    previous_close: float | None = None
    open: float | None = None
    day_high: float | None = None
    day_low: float | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    fifty_day_average: float | None = None
    two_hundred_day_average: float | None = None
    average_volume_3m: int | None = None
    average_volume_10d: int | None = None
    market_cap: int | None = None

    eps_ttm: float | None = None
    eps_forward: float | None = None
    book_value: float | None = None
    trailing_pe: float | None = None
    forward_pe: float | None = None
    price_to_book: float | None = None

    @property
    def has_price(self) -> bool:
        return bool(self.price)

    @property
    def display_name(self) -> str | None:
        return self.long_name or self.short_name

    @classmethod
    def from_yahoo(cls, symbol: str, raw: dict[str, Any]) -> "QuoteRecord":
        """Build from a Yahoo quote payload (``regularMarket*`` keys)."""
        return cls(
            symbol=symbol,
            long_name=safe_str(raw.get("longName")),
            short_name=safe_str(raw.get("shortName")),
            currency=safe_str(raw.get("currency")),
            price=safe_float(raw.get("regularMarketPrice")),
            volume=safe_int(raw.get("regularMarketVolume")),
            previous_close=safe_float(raw.get("regularMarketPreviousClose")),
            open=safe_float(raw.get("regularMarketOpen")),
            day_high=safe_float(raw.get("regularMarketDayHigh")),
            day_low=safe_float(raw.get("regularMarketDayLow")),
            fifty_two_week_high=safe_float(raw.get("fiftyTwoWeekHigh")),
            fifty_two_week_low=safe_float(raw.get("fiftyTwoWeekLow")),
            fifty_day_average=safe_float(raw.get("fiftyDayAverage")),
            two_hundred_day_average=safe_float(raw.get("twoHundredDayAverage")),
            average_volume_3m=safe_int(raw.get("averageDailyVolume3Month")),
            average_volume_10d=safe_int(raw.get("averageDailyVolume10Day")),
            market_cap=safe_int(raw.get("marketCap")),
            eps_ttm=safe_float(raw.get("epsTrailingTwelveMonths")),
            eps_forward=safe_float(raw.get("epsForward")),
            book_value=safe_float(raw.get("bookValue")),
            trailing_pe=safe_float(raw.get("trailingPE")),
            forward_pe=safe_float(raw.get("forwardPE")),
            price_to_book=safe_float(raw.get("priceToBook")),
        )


# =============================================================================
# Extended modules
# =============================================================================


class FinancialModule(BaseModel):
    """``financialData``: balance sheet health, margins and analyst view."""

    total_revenue: int | None = None
    total_cash: int | None = None
    total_debt: int | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    quick_ratio: float | None = None
    profit_margins: float | None = None
    gross_margins: float | None = None
    operating_margins: float | None = None
    ebitda_margins: float | None = None
    return_on_assets: float | None = None
    return_on_equity: float | None = None
    revenue_growth: float | None = None
    earnings_growth: float | None = None
    recommendation_key: str | None = None
    number_of_analyst_opinions: int | None = None
    target_high_price: float | None = None
    target_low_price: float | None = None

    @classmethod
    def from_yahoo(cls, raw: dict[str, Any]) -> "FinancialModule":
        recommendation = safe_str(raw.get("recommendationKey"))
        if recommendation and recommendation.lower() == "none":
            recommendation = None
        return cls(
            total_revenue=safe_int(raw.get("totalRevenue")),
            total_cash=safe_int(raw.get("totalCash")),
            total_debt=safe_int(raw.get("totalDebt")),
            debt_to_equity=safe_float(raw.get("debtToEquity")),
            current_ratio=safe_float(raw.get("currentRatio")),
            quick_ratio=safe_float(raw.get("quickRatio")),
            profit_margins=safe_float(raw.get("profitMargins")),
            gross_margins=safe_float(raw.get("grossMargins")),
            operating_margins=safe_float(raw.get("operatingMargins")),
            ebitda_margins=safe_float(raw.get("ebitdaMargins")),
            return_on_assets=safe_float(raw.get("returnOnAssets")),
            return_on_equity=safe_float(raw.get("returnOnEquity")),
            revenue_growth=safe_float(raw.get("revenueGrowth")),
            earnings_growth=safe_float(raw.get("earningsGrowth")),
            recommendation_key=recommendation,
            number_of_analyst_opinions=safe_int(raw.get("numberOfAnalystOpinions")),
            target_high_price=safe_float(raw.get("targetHighPrice")),
            target_low_price=safe_float(raw.get("targetLowPrice")),
        )


class KeyStatisticsModule(BaseModel):
    """``defaultKeyStatistics``: holdings, corporate actions, per-share values."""

    held_percent_institutions: float | None = None
    held_percent_insiders: float | None = None
    last_split_factor: str | None = None
    last_split_date: date | None = None
    last_dividend_value: float | None = None
    last_dividend_date: date | None = None
    book_value: float | None = None
    trailing_eps: float | None = None
    forward_eps: float | None = None
    price_to_book: float | None = None
    forward_pe: float | None = None

    @classmethod
    def from_yahoo(cls, raw: dict[str, Any]) -> "KeyStatisticsModule":
        return cls(
            held_percent_institutions=safe_float(raw.get("heldPercentInstitutions")),
            held_percent_insiders=safe_float(raw.get("heldPercentInsiders")),
            last_split_factor=safe_str(raw.get("lastSplitFactor")),
            last_split_date=parse_provider_date(raw.get("lastSplitDate")),
            last_dividend_value=safe_float(raw.get("lastDividendValue")),
            last_dividend_date=parse_provider_date(raw.get("lastDividendDate")),
            book_value=safe_float(raw.get("bookValue")),
            trailing_eps=safe_float(raw.get("trailingEps")),
            forward_eps=safe_float(raw.get("forwardEps")),
            price_to_book=safe_float(raw.get("priceToBook")),
            forward_pe=safe_float(raw.get("forwardPE")),
        )


class CalendarModule(BaseModel):
    """``calendarEvents``: upcoming earnings."""

    earnings_date: date | None = None
    earnings_call_date: date | None = None

    @classmethod
    def from_yahoo(cls, raw: dict[str, Any]) -> "CalendarModule":
        earnings = raw.get("earnings") or {}
        return cls(
            earnings_date=parse_provider_date(earnings.get("earningsDate")),
            earnings_call_date=parse_provider_date(earnings.get("earningsCallDate")),
        )


class ModulesRecord(BaseModel):
    """Extended modules for one symbol; absent modules stay None."""

    symbol: str
    sector: str | None = None
    industry: str | None = None
    financial: FinancialModule | None = None
    key_statistics: KeyStatisticsModule | None = None
    calendar: CalendarModule | None = None

    @property
    def recommendation_key(self) -> str | None:
        return self.financial.recommendation_key if self.financial else None

    @classmethod
    def from_yahoo(cls, symbol: str, raw: dict[str, Any]) -> "ModulesRecord":
        """Build from ``{moduleName: payload}``; string payloads are provider errors."""

        def module(name: str) -> dict[str, Any] | None:
            payload = raw.get(name)
            return payload if isinstance(payload, dict) and payload else None

        profile = module("summaryProfile") or module("assetProfile") or {}
        financial = module("financialData")
        stats = module("defaultKeyStatistics")
        calendar = module("calendarEvents")

        return cls(
            symbol=symbol,
            sector=safe_str(profile.get("sector")),
            industry=safe_str(profile.get("industry")),
            financial=FinancialModule.from_yahoo(financial) if financial else None,
            key_statistics=KeyStatisticsModule.from_yahoo(stats) if stats else None,
            calendar=CalendarModule.from_yahoo(calendar) if calendar else None,
        )


# =============================================================================
# Search
# =============================================================================


class CandidateRecord(BaseModel):
    """One provider search hit."""

    symbol: str
    name: str | None = None
    exchange: str | None = None
    quote_type: str | None = None
    type_display: str | None = None

    @classmethod
    def from_yahoo(cls, raw: dict[str, Any]) -> "CandidateRecord | None":
        symbol = safe_str(raw.get("symbol"))
        if not symbol:
            return None
        return cls(
            symbol=symbol.upper(),
            name=safe_str(raw.get("longname")) or safe_str(raw.get("shortname")),
            exchange=safe_str(raw.get("exchDisp")) or safe_str(raw.get("exchange")),
            quote_type=safe_str(raw.get("quoteType")),
            type_display=safe_str(raw.get("typeDisp")),
        )
