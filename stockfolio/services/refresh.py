"""
Refresh orchestration: decide what to refresh, fetch in throttled batches,
upsert the results, and report per-symbol outcomes.

Cycles:
- real-time: quote for every active instrument, batches of 5, 500 ms apart
- intraday gate: real-time cycle only when a market threshold has passed
- monthly category: fundamentals | financials | statistics | ratings,
  batches of 3, 1000 ms apart; all four run 2000 ms apart
- single symbol: on-demand fetch of everything for one instrument

Within a batch calls run concurrently and fail independently. Batches run
strictly one after another. Provider failures become per-symbol results;
storage failures abort the cycle.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Protocol, Sequence

from stockfolio.core.config import Settings, settings as default_settings
from stockfolio.core.exceptions import (
    AppException,
    ExternalServiceError,
    NoDataError,
    QuoteNotFoundError,
    StorageError,
)
from stockfolio.core.logging import get_logger
from stockfolio.domain.market_calendar import MarketCalendar, get_market_calendar
from stockfolio.domain.records import ModulesRecord, QuoteRecord
from stockfolio.domain.snapshots import (
    MONTHLY_CATEGORIES,
    SnapshotCategory,
    financial_fields,
    fundamental_fields,
    has_statistics,
    intraday_fields,
    rating_fields,
    realtime_fields,
    statistics_fields,
)
from stockfolio.domain.symbols import exchange_for_symbol, validate_symbol
from stockfolio.services.data_providers.base import RemoteQuoteSource


logger = get_logger("services.refresh")

SleepFn = Callable[[float], Awaitable[None]]

PROVIDER_ERRORS = (ExternalServiceError, QuoteNotFoundError)

CATEGORY_LABELS = {
    SnapshotCategory.FUNDAMENTALS: "Fundamental data",
    SnapshotCategory.FINANCIALS: "Financial data",
    SnapshotCategory.STATISTICS: "Statistics",
    SnapshotCategory.RATINGS: "Analyst ratings",
}


class SnapshotStore(Protocol):
    async def list_active_instruments(self) -> list[dict[str, Any]]: ...

    async def get_instrument_by_symbol(self, symbol: str) -> dict[str, Any] | None: ...

    async def create_instrument(self, symbol: str, exchange: str, name: str, **fields: Any) -> dict[str, Any]: ...

    async def update_instrument(self, instrument_id: int, **fields: Any) -> dict[str, Any] | None: ...

    async def touch_instrument(self, instrument_id: int, refreshed_at: datetime | None = None) -> None: ...

    async def upsert_snapshot(
        self, category: SnapshotCategory, instrument_id: int, fields: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def oldest_snapshot_timestamp(self, category: SnapshotCategory) -> datetime | None: ...

    async def get_snapshot_bundle(self, instrument_id: int) -> dict[str, dict[str, Any] | None]: ...


# =============================================================================
# Reports
# =============================================================================


@dataclass
class SymbolResult:
    symbol: str
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"symbol": self.symbol, "success": self.success, "message": self.message}


@dataclass
class CycleReport:
    """Aggregate of one batched cycle."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[SymbolResult] = field(default_factory=list)
    cancelled: bool = False

    def record(self, result: SymbolResult) -> None:
        self.results.append(result)
        self.total += 1
        if result.success:
            self.successful += 1
        else:
            self.failed += 1

    @property
    def ratio(self) -> str:
        return f"{self.successful}/{self.total}"

    def to_dict(self) -> dict[str, Any]:
        data = {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
        if self.cancelled:
            data["cancelled"] = True
        return data


@dataclass
class MonthlyReport:
    """Four category cycles; a failed category is None with an entry in ``errors``."""

    categories: dict[str, CycleReport | None] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    def _reports(self) -> list[CycleReport]:
        return [r for r in self.categories.values() if r is not None]

    @property
    def total(self) -> int:
        return sum(r.total for r in self._reports())

    @property
    def successful(self) -> int:
        return sum(r.successful for r in self._reports())

    @property
    def failed(self) -> int:
        return sum(r.failed for r in self._reports())

    @property
    def success_rate(self) -> str:
        if not self.total:
            return "0.0%"
        return f"{self.successful / self.total * 100:.1f}%"

    def failed_symbols(self) -> list[dict[str, str]]:
        return [
            {"category": name, "symbol": r.symbol, "message": r.message}
            for name, report in self.categories.items()
            if report is not None
            for r in report.results
            if not r.success
        ]

    def summary(self) -> dict[str, Any]:
        return {
            "total_stocks": max((r.total for r in self._reports()), default=0),
            "total_updates": self.total,
            "successful_updates": self.successful,
            "failed_updates": self.failed,
            "success_rate": self.success_rate,
            "update_types": {
                name: report.ratio if report is not None else "failed"
                for name, report in self.categories.items()
            },
            "errors": list(self.errors),
        }

    def to_dict(self) -> dict[str, Any]:
        data = {
            "results": {
                name: report.to_dict() if report is not None else None
                for name, report in self.categories.items()
            },
            "overall": {
                "total": self.total,
                "successful": self.successful,
                "failed": self.failed,
                "errors": list(self.errors),
                "failed_symbols": self.failed_symbols(),
            },
            "summary": self.summary(),
        }
        if self.cancelled:
            data["cancelled"] = True
        return data


@dataclass
class IntradayStatus:
    needs_update: bool
    oldest_update: datetime | None
    current_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "needs_update": self.needs_update,
            "oldest_update": self.oldest_update,
            "current_time": self.current_time,
        }


@dataclass
class IntradayGateResult:
    updated: bool
    message: str
    count: int
    report: CycleReport | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"updated": self.updated, "message": self.message, "count": self.count}
        if self.report is not None:
            data["stats"] = {
                "total": self.report.total,
                "successful": self.report.successful,
                "failed": self.report.failed,
            }
        return data


@dataclass
class SymbolRefresh:
    instrument: dict[str, Any]
    snapshots: dict[str, dict[str, Any] | None]
    created: bool


def _failure_message(error: BaseException) -> str:
    if isinstance(error, AppException):
        return error.message
    return str(error) or type(error).__name__


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


# =============================================================================
# Orchestrator
# =============================================================================


class RefreshOrchestrator:
    """Owns every refresh cycle; the store and source are injected."""

    def __init__(
        self,
        store: SnapshotStore,
        source: RemoteQuoteSource,
        calendar: MarketCalendar | None = None,
        sleep: SleepFn = asyncio.sleep,
        config: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        cfg = config or default_settings
        self.store = store
        self.source = source
        self.calendar = calendar or MarketCalendar.from_settings(cfg)
        self._sleep = sleep
        self._now = clock or (lambda: datetime.now(UTC))

        self.realtime_batch_size = cfg.realtime_batch_size
        self.realtime_batch_delay = cfg.realtime_batch_delay_ms / 1000
        self.monthly_batch_size = cfg.monthly_batch_size
        self.monthly_batch_delay = cfg.monthly_batch_delay_ms / 1000
        self.monthly_category_delay = cfg.monthly_category_delay_ms / 1000
        self.default_suffix = cfg.default_exchange_suffix
        self.suffixes = tuple(cfg.supported_exchange_suffixes)

    # -------------------------------------------------------------------------
    # Batching
    # -------------------------------------------------------------------------

    async def _run_batches(
        self,
        instruments: Sequence[dict[str, Any]],
        batch_size: int,
        delay: float,
        worker: Callable[[dict[str, Any]], Awaitable[SymbolResult]],
        cancel_event: asyncio.Event | None = None,
    ) -> CycleReport:
        report = CycleReport()
        batches = [instruments[i:i + batch_size] for i in range(0, len(instruments), batch_size)]

        for index, batch in enumerate(batches):
            if _is_cancelled(cancel_event):
                report.cancelled = True
                break

            logger.debug(f"Batch {index + 1}/{len(batches)}: {[i['symbol'] for i in batch]}")
            outcomes = await asyncio.gather(*(worker(i) for i in batch), return_exceptions=True)

            storage_failure: StorageError | None = None
            for instrument, outcome in zip(batch, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, StorageError):
                    storage_failure = storage_failure or outcome
                elif isinstance(outcome, BaseException):
                    report.record(SymbolResult(instrument["symbol"], False, _failure_message(outcome)))
                else:
                    report.record(outcome)
            if storage_failure is not None:
                raise storage_failure

            if index < len(batches) - 1 and delay > 0:
                if _is_cancelled(cancel_event):
                    report.cancelled = True
                    break
                await self._sleep(delay)

        if report.cancelled:
            logger.info(f"Cycle cancelled after {report.total} of {len(instruments)} instruments")
        return report

    async def _modules_or_none(self, symbol: str) -> ModulesRecord | None:
        try:
            return await self.source.fetch_extended_modules(symbol)
        except PROVIDER_ERRORS as e:
            logger.info(f"Extended modules unavailable for {symbol}: {e.message}")
            return None

    # -------------------------------------------------------------------------
    # Real-time
    # -------------------------------------------------------------------------

    async def _write_live_snapshots(self, instrument_id: int, quote: QuoteRecord) -> None:
        await self.store.upsert_snapshot(SnapshotCategory.REALTIME, instrument_id, realtime_fields(quote))
        await self.store.upsert_snapshot(SnapshotCategory.INTRADAY, instrument_id, intraday_fields(quote))
        await self.store.touch_instrument(instrument_id, self._now())

    async def _refresh_realtime(self, instrument: dict[str, Any]) -> SymbolResult:
        symbol = instrument["symbol"]
        quote = await self.source.fetch_quote(symbol)
        if not quote.has_price:
            return SymbolResult(symbol, False, "Unable to fetch valid price data")
        await self._write_live_snapshots(instrument["id"], quote)
        return SymbolResult(symbol, True, "Updated successfully")

    async def run_realtime_cycle(self, cancel_event: asyncio.Event | None = None) -> CycleReport:
        """Quote every active instrument; upsert real-time and intraday snapshots."""
        instruments = await self.store.list_active_instruments()
        logger.info(f"Real-time refresh started for {len(instruments)} instruments")

        report = await self._run_batches(
            instruments,
            self.realtime_batch_size,
            self.realtime_batch_delay,
            self._refresh_realtime,
            cancel_event,
        )
        logger.info(f"Real-time refresh finished: {report.successful}/{report.total} succeeded")
        return report

    # -------------------------------------------------------------------------
    # Intraday gate
    # -------------------------------------------------------------------------

    async def check_intraday_status(self, now: datetime | None = None) -> IntradayStatus:
        """Read-only: would the gate refresh right now?"""
        now = now or self._now()
        oldest = await self.store.oldest_snapshot_timestamp(SnapshotCategory.INTRADAY)
        needs_update = oldest is None or self.calendar.is_refresh_due(oldest, now)
        return IntradayStatus(needs_update=needs_update, oldest_update=oldest, current_time=now)

    async def run_intraday_gate(self, cancel_event: asyncio.Event | None = None) -> IntradayGateResult:
        status = await self.check_intraday_status()
        if not status.needs_update:
            return IntradayGateResult(updated=False, message="Intraday data is up to date", count=0)

        report = await self.run_realtime_cycle(cancel_event)
        return IntradayGateResult(
            updated=True,
            message=f"Updated intraday data for {report.successful} stocks",
            count=report.successful,
            report=report,
        )

    # -------------------------------------------------------------------------
    # Monthly categories
    # -------------------------------------------------------------------------

    async def _refresh_category(self, category: SnapshotCategory, instrument: dict[str, Any]) -> SymbolResult:
        symbol = instrument["symbol"]

        if category is SnapshotCategory.FUNDAMENTALS:
            quote, modules = await asyncio.gather(
                self.source.fetch_quote(symbol),
                self._modules_or_none(symbol),
            )
            fields = fundamental_fields(quote, modules)
        else:
            modules = await self.source.fetch_extended_modules(symbol)
            if category is SnapshotCategory.FINANCIALS:
                if modules.financial is None:
                    return SymbolResult(symbol, False, "No financial data received")
                fields = financial_fields(modules)
            elif category is SnapshotCategory.STATISTICS:
                if not has_statistics(modules):
                    return SymbolResult(symbol, False, "No statistics data received")
                fields = statistics_fields(modules)
            else:
                if not modules.recommendation_key:
                    return SymbolResult(symbol, False, "No analyst rating data received")
                fields = rating_fields(modules)

        await self.store.upsert_snapshot(category, instrument["id"], fields)
        return SymbolResult(symbol, True, f"{CATEGORY_LABELS[category]} updated")

    async def run_category_cycle(
        self,
        category: SnapshotCategory | str,
        cancel_event: asyncio.Event | None = None,
    ) -> CycleReport:
        category = SnapshotCategory(category)
        if category not in MONTHLY_CATEGORIES:
            raise ValueError(f"{category.value} is not a monthly category")

        instruments = await self.store.list_active_instruments()
        logger.info(f"{CATEGORY_LABELS[category]} refresh started for {len(instruments)} instruments")

        report = await self._run_batches(
            instruments,
            self.monthly_batch_size,
            self.monthly_batch_delay,
            functools.partial(self._refresh_category, category),
            cancel_event,
        )
        logger.info(f"{CATEGORY_LABELS[category]} refresh finished: {report.successful}/{report.total} succeeded")
        return report

    async def run_monthly_cycles(self, cancel_event: asyncio.Event | None = None) -> MonthlyReport:
        """All four categories in order; one failing category never stops the rest."""
        report = MonthlyReport()

        for index, category in enumerate(MONTHLY_CATEGORIES):
            if _is_cancelled(cancel_event):
                report.cancelled = True
                break

            try:
                category_report = await self.run_category_cycle(category, cancel_event)
                report.categories[category.value] = category_report
                report.cancelled = report.cancelled or category_report.cancelled
            except Exception as e:
                logger.exception(f"{CATEGORY_LABELS[category]} refresh failed")
                report.categories[category.value] = None
                report.errors.append(f"{CATEGORY_LABELS[category]} update failed: {_failure_message(e)}")

            if index < len(MONTHLY_CATEGORIES) - 1 and self.monthly_category_delay > 0:
                if _is_cancelled(cancel_event):
                    report.cancelled = True
                    break
                await self._sleep(self.monthly_category_delay)

        logger.info(
            f"Monthly refresh finished: {report.successful}/{report.total} updates, "
            f"{len(report.errors)} category errors"
        )
        return report

    # -------------------------------------------------------------------------
    # Single symbol
    # -------------------------------------------------------------------------

    async def _write_all_categories(
        self,
        instrument_id: int,
        quote: QuoteRecord,
        modules: ModulesRecord | None,
    ) -> None:
        await self.store.upsert_snapshot(SnapshotCategory.REALTIME, instrument_id, realtime_fields(quote))
        await self.store.upsert_snapshot(SnapshotCategory.INTRADAY, instrument_id, intraday_fields(quote))
        await self.store.upsert_snapshot(
            SnapshotCategory.FUNDAMENTALS, instrument_id, fundamental_fields(quote, modules)
        )
        if modules is None:
            return
        if modules.financial is not None:
            await self.store.upsert_snapshot(SnapshotCategory.FINANCIALS, instrument_id, financial_fields(modules))
        if has_statistics(modules):
            await self.store.upsert_snapshot(SnapshotCategory.STATISTICS, instrument_id, statistics_fields(modules))
        if modules.recommendation_key:
            await self.store.upsert_snapshot(SnapshotCategory.RATINGS, instrument_id, rating_fields(modules))

    def validate(self, raw_symbol: str) -> str:
        return validate_symbol(raw_symbol, self.default_suffix, self.suffixes)

    async def refresh_symbol(self, raw_symbol: str) -> SymbolRefresh:
        """
        Fetch quote and modules in one round trip and store every category.

        Raises InvalidSymbolError before any I/O, NoDataError when the
        provider has no usable price.
        """
        symbol = self.validate(raw_symbol)

        quote, modules = await asyncio.gather(
            self.source.fetch_quote(symbol),
            self._modules_or_none(symbol),
        )
        if not quote.has_price:
            raise NoDataError(
                message=f"No valid price data for {symbol}",
                details={"symbol": symbol},
            )

        now = self._now()
        name = quote.display_name or symbol
        sector = modules.sector if modules else None
        industry = modules.industry if modules else None

        existing = await self.store.get_instrument_by_symbol(symbol)
        if existing is None:
            instrument = await self.store.create_instrument(
                symbol,
                exchange_for_symbol(symbol),
                name,
                sector=sector,
                industry=industry,
                currency=quote.currency or "INR",
                refreshed_at=now,
            )
            logger.info(f"Created instrument {symbol} (id={instrument['id']})")
        else:
            instrument = await self.store.update_instrument(
                existing["id"],
                name=name,
                sector=sector,
                industry=industry,
                last_refreshed_at=now,
            ) or existing

        await self._write_all_categories(instrument["id"], quote, modules)
        snapshots = await self.store.get_snapshot_bundle(instrument["id"])
        return SymbolRefresh(instrument=instrument, snapshots=snapshots, created=existing is None)

    async def ensure_instrument(self, raw_symbol: str) -> dict[str, Any]:
        """Stored instrument for ``raw_symbol``, refreshed into existence if unknown."""
        symbol = self.validate(raw_symbol)
        existing = await self.store.get_instrument_by_symbol(symbol)
        if existing is not None:
            return existing
        return (await self.refresh_symbol(symbol)).instrument


_orchestrator: RefreshOrchestrator | None = None


def get_refresh_orchestrator() -> RefreshOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        from stockfolio.repositories.store import get_entity_store
        from stockfolio.services.data_providers import get_quote_source

        _orchestrator = RefreshOrchestrator(
            store=get_entity_store(),
            source=get_quote_source(),
            calendar=get_market_calendar(),
        )
    return _orchestrator
