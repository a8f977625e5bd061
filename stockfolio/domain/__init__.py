"""Domain rules and typed records shared by services.

Usage:
    from stockfolio.domain import QuoteRecord, get_market_calendar, validate_symbol

    symbol = validate_symbol("reliance")  # "RELIANCE.NS"
    due = get_market_calendar().is_refresh_due(last_refreshed_at, now)
"""

from stockfolio.domain.market_calendar import (
    IST,
    MarketCalendar,
    TradingWindow,
    get_market_calendar,
)
from stockfolio.domain.records import (
    CalendarModule,
    CandidateRecord,
    FinancialModule,
    KeyStatisticsModule,
    ModulesRecord,
    QuoteRecord,
    safe_date_from_timestamp,
)
from stockfolio.domain.snapshots import MONTHLY_CATEGORIES, SnapshotCategory
from stockfolio.domain.symbols import (
    exchange_for_symbol,
    normalize_symbol,
    validate_symbol,
)


__all__ = [
    "IST",
    "MONTHLY_CATEGORIES",
    "CalendarModule",
    "CandidateRecord",
    "FinancialModule",
    "KeyStatisticsModule",
    "MarketCalendar",
    "ModulesRecord",
    "QuoteRecord",
    "SnapshotCategory",
    "TradingWindow",
    "exchange_for_symbol",
    "get_market_calendar",
    "normalize_symbol",
    "safe_date_from_timestamp",
    "validate_symbol",
]
