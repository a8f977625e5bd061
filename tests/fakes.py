"""In-memory collaborators and provider payload builders for tests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from stockfolio.core.exceptions import QuoteNotFoundError, StorageError
from stockfolio.domain.records import CandidateRecord, ModulesRecord, QuoteRecord
from stockfolio.domain.snapshots import SnapshotCategory


# ============================================================================
# Provider payload builders
# ============================================================================


def make_quote(symbol: str, price: float | None = 100.0, **fields: Any) -> QuoteRecord:
    payload = {
        "longName": f"{symbol.split('.')[0].title()} Limited",
        "currency": "INR",
        "regularMarketPrice": price,
        "regularMarketVolume": 1_250_000,
        "regularMarketPreviousClose": 98.5,
        "regularMarketOpen": 99.0,
        "regularMarketDayHigh": 101.2,
        "regularMarketDayLow": 97.8,
        "fiftyTwoWeekHigh": 130.0,
        "fiftyTwoWeekLow": 80.0,
        "marketCap": 1_500_000_000_000,
        "epsTrailingTwelveMonths": 12.4,
        "trailingPE": 8.06,
    }
    payload.update(fields)
    return QuoteRecord.from_yahoo(symbol, payload)


def make_modules(symbol: str, **modules: Any) -> ModulesRecord:
    payload = {
        "summaryProfile": {"sector": "Energy", "industry": "Oil & Gas Refining"},
        "financialData": {
            "totalRevenue": 9_000_000_000_000,
            "totalCash": 2_000_000_000_000,
            "debtToEquity": 36.5,
            "profitMargins": 0.081,
            "recommendationKey": "buy",
            "numberOfAnalystOpinions": 31,
            "targetHighPrice": 3500.0,
            "targetLowPrice": 2400.0,
        },
        "defaultKeyStatistics": {
            "heldPercentInstitutions": 0.42,
            "bookValue": 1150.3,
            "lastSplitFactor": "1:1",
            "lastSplitDate": 1698710400,
        },
        "calendarEvents": {"earnings": {"earningsDate": [1737072000]}},
    }
    payload.update(modules)
    return ModulesRecord.from_yahoo(symbol, {k: v for k, v in payload.items() if v is not None})


# ============================================================================
# In-memory collaborators
# ============================================================================


class FakeStore:
    """In-memory stand-in for EntityUpsertStore."""

    def __init__(self):
        self.instruments: dict[int, dict[str, Any]] = {}
        self.snapshots: dict[tuple[SnapshotCategory, int], dict[str, Any]] = {}
        self.touched: list[int] = []
        self.failing_instrument_ids: set[int] = set()
        self._next_id = 1

    def add_instrument(self, symbol: str, name: str | None = None, **fields: Any) -> dict[str, Any]:
        instrument = {
            "id": self._next_id,
            "symbol": symbol,
            "exchange": "BSE" if symbol.endswith(".BO") else "NSE",
            "name": name or symbol,
            "sector": None,
            "industry": None,
            "currency": "INR",
            "is_active": True,
            "last_refreshed_at": None,
            "created_at": datetime.now(UTC),
        }
        instrument.update(fields)
        self.instruments[self._next_id] = instrument
        self._next_id += 1
        return instrument

    def rows(self, category: SnapshotCategory) -> list[dict[str, Any]]:
        return [row for (c, _), row in self.snapshots.items() if c is category]

    async def list_active_instruments(self) -> list[dict[str, Any]]:
        return [dict(i) for _, i in sorted(self.instruments.items()) if i["is_active"]]

    async def get_instrument_by_symbol(self, symbol: str) -> dict[str, Any] | None:
        for instrument in self.instruments.values():
            if instrument["symbol"] == symbol.upper():
                return dict(instrument)
        return None

    async def create_instrument(self, symbol: str, exchange: str, name: str, **fields: Any) -> dict[str, Any]:
        refreshed_at = fields.pop("refreshed_at", None)
        instrument = self.add_instrument(symbol, name, exchange=exchange, **fields)
        instrument["last_refreshed_at"] = refreshed_at
        return dict(instrument)

    async def update_instrument(self, instrument_id: int, **fields: Any) -> dict[str, Any] | None:
        instrument = self.instruments.get(instrument_id)
        if instrument is None:
            return None
        instrument.update({k: v for k, v in fields.items() if v is not None})
        return dict(instrument)

    async def touch_instrument(self, instrument_id: int, refreshed_at: datetime | None = None) -> None:
        self.touched.append(instrument_id)
        self.instruments[instrument_id]["last_refreshed_at"] = refreshed_at or datetime.now(UTC)

    async def upsert_snapshot(
        self, category: SnapshotCategory, instrument_id: int, fields: dict[str, Any]
    ) -> dict[str, Any]:
        if instrument_id in self.failing_instrument_ids:
            raise StorageError(details={"operation": "upsert_snapshot"})
        row = {**fields, "instrument_id": instrument_id, "updated_at": datetime.now(UTC)}
        self.snapshots[(SnapshotCategory(category), instrument_id)] = row
        return row

    async def oldest_snapshot_timestamp(self, category: SnapshotCategory) -> datetime | None:
        stamps = [row["updated_at"] for row in self.rows(SnapshotCategory(category))]
        return min(stamps) if stamps else None

    async def get_snapshot_bundle(self, instrument_id: int) -> dict[str, dict[str, Any] | None]:
        return {c.value: self.snapshots.get((c, instrument_id)) for c in SnapshotCategory}


class FakeQuoteSource:
    """
    Scripted RemoteQuoteSource.

    ``quotes`` / ``modules`` map a symbol to a record or an exception to
    raise; unscripted symbols get a healthy default.
    """

    def __init__(self):
        self.quotes: dict[str, QuoteRecord | Exception] = {}
        self.modules: dict[str, ModulesRecord | Exception] = {}
        self.candidates: list[CandidateRecord] | Exception = []
        self.quote_calls: list[str] = []
        self.module_calls: list[str] = []

    async def fetch_quote(self, symbol: str) -> QuoteRecord:
        self.quote_calls.append(symbol)
        value = self.quotes.get(symbol) or make_quote(symbol)
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_extended_modules(self, symbol: str) -> ModulesRecord:
        self.module_calls.append(symbol)
        value = self.modules.get(symbol) or make_modules(symbol)
        if isinstance(value, Exception):
            raise value
        return value

    async def search(self, keyword: str) -> list[CandidateRecord]:
        if isinstance(self.candidates, Exception):
            raise self.candidates
        return list(self.candidates)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self, on_sleep=None):
        self.calls: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.calls))


def not_found(symbol: str) -> QuoteNotFoundError:
    return QuoteNotFoundError(message=f"No data found for {symbol}", details={"symbol": symbol})



# ============================================================================
# SQLAlchemy session stand-in
# ============================================================================


class _Result:
    def __init__(self, row: Any):
        self._row = row

    def scalar_one(self) -> Any:
        return self._row

    def scalar_one_or_none(self) -> Any:
        return self._row

    def scalars(self) -> "_Result":
        return self

    def all(self) -> list[Any]:
        return [] if self._row is None else [self._row]


class CapturingSession:
    """Records executed statements and answers every query with ``row``."""

    def __init__(self, row: Any = None):
        self.row = row
        self.statements: list[Any] = []
        self.added: list[Any] = []
        self.commits = 0

    async def execute(self, statement: Any) -> _Result:
        self.statements.append(statement)
        return _Result(self.row)

    def add(self, obj: Any) -> None:
        self.added.append(obj)

    async def commit(self) -> None:
        self.commits += 1

    async def refresh(self, obj: Any) -> None:
        return None

    async def rollback(self) -> None:
        return None


def session_factory(session: CapturingSession):
    """A drop-in for ``get_session`` that always yields ``session``."""

    @asynccontextmanager
    async def _get_session():
        yield session

    return _get_session
