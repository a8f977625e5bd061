"""Tests for session tracking and the refresh scheduler jobs."""

from __future__ import annotations

import pytest

from fakes import FakeQuoteSource, FakeStore, RecordingSleep
from stockfolio.domain.market_calendar import MarketCalendar
from stockfolio.jobs.activity import ActiveSessionTracker
from stockfolio.jobs.scheduler import RefreshScheduler
from stockfolio.services.refresh import CycleReport, RefreshOrchestrator


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestActiveSessionTracker:
    """Tests for ActiveSessionTracker."""

    def test_first_touch_reports_new_activity(self):
        tracker = ActiveSessionTracker(ttl_seconds=60, clock=FakeClock())

        assert tracker.touch("user_a") is True
        assert tracker.touch("user_a") is False
        assert tracker.active_count() == 1

    def test_sessions_expire_after_ttl(self):
        clock = FakeClock()
        tracker = ActiveSessionTracker(ttl_seconds=60, clock=clock)
        tracker.touch("user_a")
        clock.now += 30
        tracker.touch("user_b")

        clock.now += 45

        assert tracker.active_count() == 1

    def test_touch_after_idle_counts_as_new(self):
        clock = FakeClock()
        tracker = ActiveSessionTracker(ttl_seconds=60, clock=clock)
        tracker.touch("user_a")
        clock.now += 61

        assert tracker.touch("user_a") is True

    def test_clear(self):
        tracker = ActiveSessionTracker(ttl_seconds=60, clock=FakeClock())
        tracker.touch("user_a")
        tracker.clear()

        assert tracker.active_count() == 0


class TestRefreshScheduler:
    """Tests for the scheduler jobs, called directly."""

    @pytest.fixture
    def tracker(self) -> ActiveSessionTracker:
        return ActiveSessionTracker(ttl_seconds=60, clock=FakeClock())

    @pytest.fixture
    def orchestrator(self, mocker):
        orchestrator = mocker.Mock(spec=RefreshOrchestrator)
        orchestrator.run_realtime_cycle = mocker.AsyncMock(return_value=CycleReport(total=3, successful=3))
        return orchestrator

    async def test_realtime_job_skips_without_sessions(self, orchestrator, tracker):
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=MarketCalendar())

        result = await scheduler.realtime_refresh()

        assert result == "skipped, no active sessions"
        orchestrator.run_realtime_cycle.assert_not_awaited()

    async def test_realtime_job_runs_for_active_users(self, orchestrator, tracker, mocker):
        mocker.patch("stockfolio.jobs.scheduler.settings.realtime_market_hours_only", False)
        tracker.touch("user_a")
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=MarketCalendar())

        result = await scheduler.realtime_refresh()

        assert result == "3/3 updated for 1 active users"
        orchestrator.run_realtime_cycle.assert_awaited_once()

    async def test_realtime_job_respects_market_hours(self, orchestrator, tracker, mocker):
        mocker.patch("stockfolio.jobs.scheduler.settings.realtime_market_hours_only", True)
        calendar = mocker.Mock(spec=MarketCalendar)
        calendar.is_within_continuous_window.return_value = False
        calendar.tz = MarketCalendar().tz
        tracker.touch("user_a")
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=calendar)

        assert await scheduler.realtime_refresh() == "skipped, market closed"

    async def test_trigger_is_noop_when_not_running(self, orchestrator, tracker):
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=MarketCalendar())

        assert scheduler.trigger_intraday_gate() is False

    async def test_failed_job_is_logged_not_raised(self, orchestrator, tracker, mocker):
        orchestrator.run_intraday_gate = mocker.AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=MarketCalendar())
        logger = mocker.patch("stockfolio.jobs.scheduler.logger")

        await scheduler._execute_job("intraday_gate", scheduler.intraday_gate)

        logger.exception.assert_called_once()

    async def test_monthly_job_against_fakes(
        self, tracker, fake_store: FakeStore, fake_source: FakeQuoteSource, recording_sleep: RecordingSleep,
    ):
        fake_store.add_instrument("SBIN.NS")
        orchestrator = RefreshOrchestrator(fake_store, fake_source, sleep=recording_sleep)
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=MarketCalendar())

        assert await scheduler.monthly_refresh() == "4/4 updates (100.0%)"

    async def test_stop_cancels_running_cycles(self, orchestrator, tracker, mocker):
        mocker.patch("stockfolio.jobs.scheduler.settings.scheduler_enabled", True)
        scheduler = RefreshScheduler(orchestrator=orchestrator, tracker=tracker, calendar=MarketCalendar())

        await scheduler.start()
        assert scheduler.running
        assert scheduler.get_next_run_time("intraday_gate") is not None
        cancel_event = scheduler._cancel_event

        await scheduler.stop()

        assert cancel_event.is_set()
        assert not scheduler.running
