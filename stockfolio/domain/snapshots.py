"""Snapshot categories and the provider fields each one stores.

Each category is a single slot per instrument: a refresh overwrites the
previous row. Money and ratio values are handed to storage as Decimals.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from .records import ModulesRecord, QuoteRecord, to_decimal


class SnapshotCategory(str, Enum):
    REALTIME = "realtime"
    INTRADAY = "intraday"
    FUNDAMENTALS = "fundamentals"
    FINANCIALS = "financials"
    STATISTICS = "statistics"
    RATINGS = "ratings"


MONTHLY_CATEGORIES = (
    SnapshotCategory.FUNDAMENTALS,
    SnapshotCategory.FINANCIALS,
    SnapshotCategory.STATISTICS,
    SnapshotCategory.RATINGS,
)


def trend_signal(quote: QuoteRecord) -> str | None:
    """``up`` / ``down`` / ``flat`` against the previous close."""
    if quote.price is None or quote.previous_close is None:
        return None
    if quote.price > quote.previous_close:
        return "up"
    if quote.price < quote.previous_close:
        return "down"
    return "flat"


def realtime_fields(quote: QuoteRecord) -> dict[str, Any]:
    return {
        "price": to_decimal(quote.price),
        "volume": quote.volume,
        "signal": trend_signal(quote),
    }


def intraday_fields(quote: QuoteRecord) -> dict[str, Any]:
    return {
        "previous_close": to_decimal(quote.previous_close),
        "open": to_decimal(quote.open),
        "day_high": to_decimal(quote.day_high),
        "day_low": to_decimal(quote.day_low),
        "fifty_two_week_high": to_decimal(quote.fifty_two_week_high),
        "fifty_two_week_low": to_decimal(quote.fifty_two_week_low),
        "fifty_day_average": to_decimal(quote.fifty_day_average),
        "two_hundred_day_average": to_decimal(quote.two_hundred_day_average),
        "avg_volume_3m": quote.average_volume_3m,
        "avg_volume_10d": quote.average_volume_10d,
        "market_cap": quote.market_cap,
    }


def fundamental_fields(quote: QuoteRecord, modules: ModulesRecord | None = None) -> dict[str, Any]:
    """Quote values first, key statistics as the fallback."""
    stats = modules.key_statistics if modules else None

    def pick(quote_value, stats_attr: str):
        if quote_value is not None:
            return quote_value
        return getattr(stats, stats_attr) if stats else None

    return {
        "eps_ttm": to_decimal(pick(quote.eps_ttm, "trailing_eps")),
        "eps_forward": to_decimal(pick(quote.eps_forward, "forward_eps")),
        "book_value": to_decimal(pick(quote.book_value, "book_value")),
        "trailing_pe": to_decimal(quote.trailing_pe),
        "forward_pe": to_decimal(pick(quote.forward_pe, "forward_pe")),
        "price_to_book": to_decimal(pick(quote.price_to_book, "price_to_book")),
    }


def financial_fields(modules: ModulesRecord) -> dict[str, Any]:
    fin = modules.financial
    if fin is None:
        return {}
    return {
        "total_revenue": fin.total_revenue,
        "total_cash": fin.total_cash,
        "total_debt": fin.total_debt,
        "debt_to_equity": to_decimal(fin.debt_to_equity),
        "current_ratio": to_decimal(fin.current_ratio),
        "quick_ratio": to_decimal(fin.quick_ratio),
        "profit_margins": to_decimal(fin.profit_margins),
        "gross_margins": to_decimal(fin.gross_margins),
        "operating_margins": to_decimal(fin.operating_margins),
        "ebitda_margins": to_decimal(fin.ebitda_margins),
        "return_on_assets": to_decimal(fin.return_on_assets),
        "return_on_equity": to_decimal(fin.return_on_equity),
        "revenue_growth": to_decimal(fin.revenue_growth),
        "earnings_growth": to_decimal(fin.earnings_growth),
    }


def statistics_fields(modules: ModulesRecord) -> dict[str, Any]:
    stats = modules.key_statistics
    calendar = modules.calendar
    return {
        "held_percent_institutions": to_decimal(stats.held_percent_institutions) if stats else None,
        "held_percent_insiders": to_decimal(stats.held_percent_insiders) if stats else None,
        "last_split_factor": stats.last_split_factor if stats else None,
        "last_split_date": stats.last_split_date if stats else None,
        "last_dividend_value": to_decimal(stats.last_dividend_value) if stats else None,
        "last_dividend_date": stats.last_dividend_date if stats else None,
        "earnings_date": calendar.earnings_date if calendar else None,
        "earnings_call_date": calendar.earnings_call_date if calendar else None,
    }


def rating_fields(modules: ModulesRecord) -> dict[str, Any]:
    fin = modules.financial
    if fin is None:
        return {}
    return {
        "recommendation": fin.recommendation_key,
        "number_of_analysts": fin.number_of_analyst_opinions,
        "target_high_price": to_decimal(fin.target_high_price),
        "target_low_price": to_decimal(fin.target_low_price),
    }


def has_statistics(modules: ModulesRecord | None) -> bool:
    return modules is not None and (modules.key_statistics is not None or modules.calendar is not None)
