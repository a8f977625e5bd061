"""Refresh scheduler using APScheduler with async support."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from stockfolio.core.config import settings
from stockfolio.core.logging import get_logger
from stockfolio.domain.market_calendar import MarketCalendar, get_market_calendar

from .activity import ActiveSessionTracker, get_session_tracker


logger = get_logger("jobs.scheduler")

# Global scheduler instance
_scheduler: Optional["RefreshScheduler"] = None


class RefreshScheduler:
    """
    Background refresh jobs.

    - realtime_refresh: every N seconds while users are active
    - intraday_gate: every N minutes, refreshes once per market threshold
    - monthly_refresh: all four monthly categories on a cron schedule

    Stopping the scheduler sets the cancel event that running cycles check
    between batches.
    """

    def __init__(
        self,
        orchestrator: Any = None,
        tracker: ActiveSessionTracker | None = None,
        calendar: MarketCalendar | None = None,
    ):
        self._orchestrator = orchestrator
        self._tracker = tracker or get_session_tracker()
        self._calendar = calendar or get_market_calendar()
        self._scheduler = AsyncIOScheduler(
            timezone=self._calendar.tz,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Only one instance per job at a time
                "misfire_grace_time": 60,
            },
        )
        self._cancel_event = asyncio.Event()
        self._pending: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from stockfolio.services.refresh import get_refresh_orchestrator

            self._orchestrator = get_refresh_orchestrator()
        return self._orchestrator

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return

        if not settings.scheduler_enabled:
            logger.info("Scheduler disabled via SCHEDULER_ENABLED=false")
            return

        self._cancel_event = asyncio.Event()
        self._scheduler.add_job(
            self._wrap_job("realtime_refresh", self.realtime_refresh),
            trigger=IntervalTrigger(seconds=settings.realtime_refresh_interval_seconds),
            id="realtime_refresh",
            name="Real-time prices while users are active",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._wrap_job("intraday_gate", self.intraday_gate),
            trigger=IntervalTrigger(minutes=settings.intraday_check_interval_minutes),
            id="intraday_gate",
            name="Intraday refresh at market thresholds",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._wrap_job("monthly_refresh", self.monthly_refresh),
            trigger=CronTrigger.from_crontab(settings.monthly_refresh_cron, timezone=self._calendar.tz),
            id="monthly_refresh",
            name="Monthly fundamentals, financials, statistics and ratings",
            replace_existing=True,
        )

        self._scheduler.start()
        self._running = True
        logger.info("Refresh scheduler started")

    async def stop(self) -> None:
        if not self._running:
            return

        self._cancel_event.set()
        self._scheduler.shutdown(wait=False)
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._running = False
        logger.info("Refresh scheduler stopped")

    def _wrap_job(self, name: str, func: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[None]]:
        async def wrapper():
            await self._execute_job(name, func)

        return wrapper

    async def _execute_job(self, name: str, func: Callable[[], Awaitable[Any]]) -> None:
        start_time = datetime.now(timezone.utc)
        logger.info(f"Job {name} started")
        try:
            result = await func()
        except Exception:
            duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
            logger.exception(f"Job {name} failed after {duration_ms}ms")
            return

        duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        logger.info(f"Job {name} completed in {duration_ms}ms: {result or 'ok'}")

    # =========================================================================
    # Jobs
    # =========================================================================

    async def realtime_refresh(self) -> str:
        active = self._tracker.active_count()
        if active == 0:
            return "skipped, no active sessions"

        now = datetime.now(timezone.utc)
        if settings.realtime_market_hours_only and not self._calendar.is_within_continuous_window(now):
            return "skipped, market closed"

        report = await self.orchestrator.run_realtime_cycle(self._cancel_event)
        return f"{report.successful}/{report.total} updated for {active} active users"

    async def intraday_gate(self) -> str:
        result = await self.orchestrator.run_intraday_gate(self._cancel_event)
        return result.message

    async def monthly_refresh(self) -> str:
        report = await self.orchestrator.run_monthly_cycles(self._cancel_event)
        return f"{report.successful}/{report.total} updates ({report.success_rate})"

    def trigger_intraday_gate(self) -> bool:
        """Run the intraday gate now, without waiting for its interval."""
        if not self._running:
            return False
        task = asyncio.get_running_loop().create_task(
            self._execute_job("intraday_gate", self.intraday_gate)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    def get_next_run_time(self, name: str) -> Optional[datetime]:
        job = self._scheduler.get_job(name)
        if job:
            return job.next_run_time
        return None


def get_scheduler() -> RefreshScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = RefreshScheduler()
    return _scheduler
