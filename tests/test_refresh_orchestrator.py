"""
Tests for the refresh orchestrator.

These tests verify:
1. Batch sizes and inter-batch delays
2. Per-symbol failure isolation inside a batch
3. Storage failures abort the cycle
4. Cancellation between batches
5. Intraday gate decisions
6. Monthly category rules and isolation
7. Single-symbol refresh upserts
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from fakes import FakeQuoteSource, FakeStore, RecordingSleep, make_modules, make_quote, not_found
from stockfolio.core.exceptions import InvalidSymbolError, NoDataError, ProviderError, StorageError
from stockfolio.domain.snapshots import SnapshotCategory
from stockfolio.services.refresh import RefreshOrchestrator


# Wednesday 15 January 2025, 12:00 IST
MIDDAY = datetime(2025, 1, 15, 6, 30, tzinfo=UTC)


def seed(store: FakeStore, count: int) -> list[dict]:
    return [store.add_instrument(f"STOCK{i}.NS") for i in range(count)]


# =============================================================================
# Real-time cycle
# =============================================================================


class TestRealtimeCycle:
    """Tests for run_realtime_cycle."""

    async def test_twelve_instruments_run_in_three_batches(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore,
        fake_source: FakeQuoteSource, recording_sleep: RecordingSleep,
    ):
        """Batches of 5, 5 and 2 with a 500 ms pause between them."""
        seed(fake_store, 12)

        report = await orchestrator.run_realtime_cycle()

        assert report.total == 12
        assert report.successful == 12
        assert recording_sleep.calls == [0.5, 0.5]
        assert len(fake_source.quote_calls) == 12

    async def test_failures_are_isolated_per_symbol(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        """Two failing symbols do not affect the other three."""
        seed(fake_store, 5)
        fake_source.quotes["STOCK1.NS"] = not_found("STOCK1.NS")
        fake_source.quotes["STOCK3.NS"] = ProviderError(message="Provider request failed for STOCK3.NS")

        report = await orchestrator.run_realtime_cycle()

        assert (report.total, report.successful, report.failed) == (5, 3, 2)
        assert len(report.results) == 5
        failed = {r.symbol: r.message for r in report.results if not r.success}
        assert failed == {
            "STOCK1.NS": "No data found for STOCK1.NS",
            "STOCK3.NS": "Provider request failed for STOCK3.NS",
        }
        assert len(fake_store.rows(SnapshotCategory.REALTIME)) == 3

    async def test_missing_price_is_a_failure(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        """A quote without a price is reported, nothing is written."""
        instrument = fake_store.add_instrument("SBIN.NS")
        fake_source.quotes["SBIN.NS"] = make_quote("SBIN.NS", price=None)

        report = await orchestrator.run_realtime_cycle()

        assert report.results[0].success is False
        assert report.results[0].message == "Unable to fetch valid price data"
        assert fake_store.rows(SnapshotCategory.REALTIME) == []
        assert instrument["id"] not in fake_store.touched

    async def test_success_writes_realtime_and_intraday(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore,
    ):
        """Both live snapshots are upserted and the instrument is touched."""
        instrument = fake_store.add_instrument("SBIN.NS")

        report = await orchestrator.run_realtime_cycle()

        assert report.results[0].message == "Updated successfully"
        realtime = fake_store.snapshots[(SnapshotCategory.REALTIME, instrument["id"])]
        assert realtime["signal"] == "up"
        assert (SnapshotCategory.INTRADAY, instrument["id"]) in fake_store.snapshots
        assert fake_store.touched == [instrument["id"]]

    async def test_storage_failure_aborts_cycle(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, recording_sleep: RecordingSleep,
    ):
        """StorageError is raised instead of being reported per symbol."""
        instruments = seed(fake_store, 8)
        fake_store.failing_instrument_ids.add(instruments[2]["id"])

        with pytest.raises(StorageError):
            await orchestrator.run_realtime_cycle()

        # Second batch never started
        assert recording_sleep.calls == []

    async def test_empty_instrument_list(self, orchestrator: RefreshOrchestrator):
        report = await orchestrator.run_realtime_cycle()

        assert report.to_dict() == {"total": 0, "successful": 0, "failed": 0, "results": []}


class TestCancellation:
    """Cancellation is observed between batches only."""

    async def test_cancel_during_pause_stops_next_batch(
        self, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        """Setting the event during the first pause leaves later batches untouched."""
        seed(fake_store, 12)
        cancel_event = asyncio.Event()
        sleep = RecordingSleep(on_sleep=lambda _: cancel_event.set())
        orchestrator = RefreshOrchestrator(fake_store, fake_source, sleep=sleep)

        report = await orchestrator.run_realtime_cycle(cancel_event)

        assert report.cancelled is True
        assert report.total == 5
        assert len(fake_source.quote_calls) == 5
        assert report.to_dict()["cancelled"] is True

    async def test_already_cancelled_does_nothing(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        seed(fake_store, 3)
        cancel_event = asyncio.Event()
        cancel_event.set()

        report = await orchestrator.run_realtime_cycle(cancel_event)

        assert report.cancelled is True
        assert report.total == 0
        assert fake_source.quote_calls == []


# =============================================================================
# Intraday gate
# =============================================================================


class TestIntradayGate:
    """Tests for check_intraday_status and run_intraday_gate."""

    @pytest.fixture
    def gated(self, fake_store: FakeStore, fake_source: FakeQuoteSource, recording_sleep: RecordingSleep):
        return RefreshOrchestrator(fake_store, fake_source, sleep=recording_sleep, clock=lambda: MIDDAY)

    async def test_no_snapshots_is_due(self, gated: RefreshOrchestrator, fake_store: FakeStore):
        """With nothing stored yet the gate refreshes on a trading day."""
        seed(fake_store, 2)

        result = await gated.run_intraday_gate()

        assert result.updated is True
        assert result.count == 2
        assert result.message == "Updated intraday data for 2 stocks"
        assert result.to_dict()["stats"] == {"total": 2, "successful": 2, "failed": 0}

    async def test_refreshed_after_morning_threshold_is_not_due(
        self, gated: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        """A 10:00 IST snapshot covers the rest of the morning."""
        instrument = fake_store.add_instrument("SBIN.NS")
        fake_store.snapshots[(SnapshotCategory.INTRADAY, instrument["id"])] = {
            "instrument_id": instrument["id"],
            "updated_at": datetime(2025, 1, 15, 4, 30, tzinfo=UTC),
        }

        result = await gated.run_intraday_gate()

        assert result.updated is False
        assert result.count == 0
        assert result.message == "Intraday data is up to date"
        assert "stats" not in result.to_dict()
        assert fake_source.quote_calls == []

    async def test_oldest_snapshot_from_yesterday_is_due(
        self, gated: RefreshOrchestrator, fake_store: FakeStore,
    ):
        """The oldest row decides, even if others are fresh."""
        old, fresh = seed(fake_store, 2)
        fake_store.snapshots[(SnapshotCategory.INTRADAY, old["id"])] = {
            "instrument_id": old["id"],
            "updated_at": datetime(2025, 1, 14, 11, 0, tzinfo=UTC),
        }
        fake_store.snapshots[(SnapshotCategory.INTRADAY, fresh["id"])] = {
            "instrument_id": fresh["id"],
            "updated_at": datetime(2025, 1, 15, 4, 30, tzinfo=UTC),
        }

        status = await gated.check_intraday_status()

        assert status.needs_update is True
        assert status.oldest_update == datetime(2025, 1, 14, 11, 0, tzinfo=UTC)
        assert status.current_time == MIDDAY

    async def test_weekend_is_never_due(self, fake_store: FakeStore, fake_source: FakeQuoteSource):
        saturday = datetime(2025, 1, 18, 6, 30, tzinfo=UTC)
        orchestrator = RefreshOrchestrator(fake_store, fake_source, clock=lambda: saturday)
        seed(fake_store, 1)

        status = await orchestrator.check_intraday_status()

        assert status.needs_update is False


# =============================================================================
# Monthly categories
# =============================================================================


class TestCategoryCycle:
    """Tests for run_category_cycle."""

    async def test_batches_of_three_one_second_apart(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, recording_sleep: RecordingSleep,
    ):
        seed(fake_store, 7)

        report = await orchestrator.run_category_cycle(SnapshotCategory.FINANCIALS)

        assert report.successful == 7
        assert recording_sleep.calls == [1.0, 1.0]

    async def test_rejects_live_categories(self, orchestrator: RefreshOrchestrator):
        with pytest.raises(ValueError):
            await orchestrator.run_category_cycle(SnapshotCategory.REALTIME)

    async def test_accepts_category_name(self, orchestrator: RefreshOrchestrator, fake_store: FakeStore):
        fake_store.add_instrument("SBIN.NS")

        report = await orchestrator.run_category_cycle("ratings")

        assert report.results[0].message == "Analyst ratings updated"
        row = fake_store.rows(SnapshotCategory.RATINGS)[0]
        assert row["recommendation"] == "buy"
        assert row["number_of_analysts"] == 31

    async def test_missing_financial_module_fails_financials_and_ratings(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        fake_store.add_instrument("SBIN.NS")
        fake_source.modules["SBIN.NS"] = make_modules("SBIN.NS", financialData=None)

        financials = await orchestrator.run_category_cycle(SnapshotCategory.FINANCIALS)
        ratings = await orchestrator.run_category_cycle(SnapshotCategory.RATINGS)

        assert financials.results[0].message == "No financial data received"
        assert ratings.results[0].message == "No analyst rating data received"
        assert fake_store.rows(SnapshotCategory.FINANCIALS) == []

    async def test_statistics_need_key_stats_or_calendar(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        fake_store.add_instrument("SBIN.NS")
        fake_source.modules["SBIN.NS"] = make_modules(
            "SBIN.NS", defaultKeyStatistics=None, calendarEvents=None
        )

        report = await orchestrator.run_category_cycle(SnapshotCategory.STATISTICS)

        assert report.failed == 1
        assert report.results[0].message == "No statistics data received"

    async def test_fundamentals_fall_back_to_key_statistics(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        """Book value missing from the quote comes from defaultKeyStatistics."""
        fake_store.add_instrument("SBIN.NS")

        report = await orchestrator.run_category_cycle(SnapshotCategory.FUNDAMENTALS)

        assert report.results[0].message == "Fundamental data updated"
        row = fake_store.rows(SnapshotCategory.FUNDAMENTALS)[0]
        assert str(row["book_value"]) == "1150.3"
        assert str(row["eps_ttm"]) == "12.4"

    async def test_fundamentals_survive_missing_modules(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        fake_store.add_instrument("SBIN.NS")
        fake_source.modules["SBIN.NS"] = not_found("SBIN.NS")

        report = await orchestrator.run_category_cycle(SnapshotCategory.FUNDAMENTALS)

        assert report.successful == 1
        assert fake_store.rows(SnapshotCategory.FUNDAMENTALS)[0]["book_value"] is None


class TestMonthlyCycles:
    """Tests for run_monthly_cycles."""

    async def test_runs_all_categories_two_seconds_apart(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, recording_sleep: RecordingSleep,
    ):
        seed(fake_store, 2)

        report = await orchestrator.run_monthly_cycles()

        assert list(report.categories) == ["fundamentals", "financials", "statistics", "ratings"]
        assert recording_sleep.calls == [2.0, 2.0, 2.0]
        summary = report.summary()
        assert summary["total_stocks"] == 2
        assert summary["total_updates"] == 8
        assert summary["success_rate"] == "100.0%"
        assert summary["update_types"]["ratings"] == "2/2"

    async def test_failing_category_does_not_stop_the_rest(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, monkeypatch,
    ):
        """A category that raises is recorded as an error; later ones still run."""
        seed(fake_store, 2)
        original = orchestrator.run_category_cycle

        async def flaky(category, cancel_event=None):
            if category is SnapshotCategory.FINANCIALS:
                raise StorageError()
            return await original(category, cancel_event)

        monkeypatch.setattr(orchestrator, "run_category_cycle", flaky)

        report = await orchestrator.run_monthly_cycles()

        assert report.categories["financials"] is None
        assert report.categories["statistics"].successful == 2
        assert report.categories["ratings"].successful == 2
        assert report.errors == ["Financial data update failed: Storage operation failed"]
        data = report.to_dict()
        assert data["results"]["financials"] is None
        assert data["summary"]["update_types"]["financials"] == "failed"
        assert data["overall"]["total"] == 6

    async def test_failed_symbols_are_flattened(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        seed(fake_store, 2)
        fake_source.modules["STOCK0.NS"] = make_modules("STOCK0.NS", financialData=None)

        report = await orchestrator.run_monthly_cycles()

        assert report.failed == 2
        assert report.failed_symbols() == [
            {"category": "financials", "symbol": "STOCK0.NS", "message": "No financial data received"},
            {"category": "ratings", "symbol": "STOCK0.NS", "message": "No analyst rating data received"},
        ]
        assert report.success_rate == "75.0%"


# =============================================================================
# Single symbol
# =============================================================================


class TestRefreshSymbol:
    """Tests for refresh_symbol and ensure_instrument."""

    async def test_creates_instrument_and_all_snapshots(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore,
    ):
        result = await orchestrator.refresh_symbol("reliance")

        assert result.created is True
        assert result.instrument["symbol"] == "RELIANCE.NS"
        assert result.instrument["exchange"] == "NSE"
        assert result.instrument["sector"] == "Energy"
        assert result.instrument["last_refreshed_at"] is not None
        assert all(result.snapshots[c.value] is not None for c in SnapshotCategory)

    async def test_second_refresh_keeps_one_row_per_category(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        await orchestrator.refresh_symbol("SBIN.BO")
        fake_source.quotes["SBIN.BO"] = make_quote("SBIN.BO", price=120.0)

        result = await orchestrator.refresh_symbol("SBIN.BO")

        assert result.created is False
        assert len(fake_store.instruments) == 1
        for category in SnapshotCategory:
            assert len(fake_store.rows(category)) == 1
        assert str(result.snapshots["realtime"]["price"]) == "120.0"

    async def test_invalid_symbol_raises_before_io(
        self, orchestrator: RefreshOrchestrator, fake_source: FakeQuoteSource,
    ):
        with pytest.raises(InvalidSymbolError):
            await orchestrator.refresh_symbol("RELIANCE.XX")

        assert fake_source.quote_calls == []
        assert fake_source.module_calls == []

    async def test_no_price_raises_no_data(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        fake_source.quotes["TCS.NS"] = make_quote("TCS.NS", price=None)

        with pytest.raises(NoDataError):
            await orchestrator.refresh_symbol("TCS")

        assert fake_store.instruments == {}

    async def test_quote_only_refresh_skips_module_categories(
        self, orchestrator: RefreshOrchestrator, fake_source: FakeQuoteSource,
    ):
        fake_source.modules["INFY.NS"] = not_found("INFY.NS")

        result = await orchestrator.refresh_symbol("INFY")

        assert result.snapshots["fundamentals"] is not None
        assert result.snapshots["financials"] is None
        assert result.snapshots["ratings"] is None

    async def test_ensure_instrument_reuses_stored_row(
        self, orchestrator: RefreshOrchestrator, fake_store: FakeStore, fake_source: FakeQuoteSource,
    ):
        stored = fake_store.add_instrument("HDFCBANK.NS")

        instrument = await orchestrator.ensure_instrument("hdfcbank")

        assert instrument["id"] == stored["id"]
        assert fake_source.quote_calls == []
