"""Trading-time rules for the Indian equity market.

Refreshes happen twice per trading day: once shortly after the morning
threshold (09:00 IST) and once shortly after the evening threshold
(15:45 IST). Everything here is pure; callers pass ``now`` explicitly.

Naive datetimes are taken to be UTC. All comparisons happen in market-local
wall-clock time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo


IST = timezone(timedelta(hours=5, minutes=30), name="IST")

MORNING_REFRESH = time(9, 0)
EVENING_REFRESH = time(15, 45)

# Monday=0 .. Friday=4
TRADING_WEEKDAYS = frozenset({0, 1, 2, 3, 4})


@dataclass(frozen=True)
class TradingWindow:
    """Morning and evening refresh thresholds for one local calendar date."""

    morning: datetime
    evening: datetime


@dataclass(frozen=True)
class MarketCalendar:
    """Refresh schedule for one market timezone."""

    tz: tzinfo = IST
    morning: time = MORNING_REFRESH
    evening: time = EVENING_REFRESH
    trading_weekdays: frozenset[int] = field(default=TRADING_WEEKDAYS)

    @classmethod
    def from_settings(cls, settings) -> "MarketCalendar":
        offset = timedelta(minutes=settings.market_timezone_offset_minutes)
        tz = IST if offset == IST.utcoffset(None) else timezone(offset)
        return cls(
            tz=tz,
            morning=settings.market_morning_refresh,
            evening=settings.market_evening_refresh,
        )

    def to_local(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def is_trading_day(self, instant: datetime) -> bool:
        return self.to_local(instant).weekday() in self.trading_weekdays

    def trading_window_for(self, instant: datetime) -> TradingWindow:
        """
        Thresholds on the local date of ``instant``.

        Returned whether or not that date is a trading day; check
        :meth:`is_trading_day` separately.
        """
        local_date = self.to_local(instant).date()
        return TradingWindow(
            morning=datetime.combine(local_date, self.morning, tzinfo=self.tz),
            evening=datetime.combine(local_date, self.evening, tzinfo=self.tz),
        )

    def is_within_continuous_window(self, instant: datetime) -> bool:
        if not self.is_trading_day(instant):
            return False
        window = self.trading_window_for(instant)
        local = self.to_local(instant)
        return window.morning <= local <= window.evening

    def is_refresh_due(self, last_refreshed_at: datetime | None, now: datetime) -> bool:
        """
        True when a threshold passed today after the last refresh.

        Never due outside trading days. A missing ``last_refreshed_at`` is due
        on any trading day.
        """
        if not self.is_trading_day(now):
            return False
        if last_refreshed_at is None:
            return True

        local_now = self.to_local(now)
        last = self.to_local(last_refreshed_at)
        window = self.trading_window_for(local_now)

        if local_now >= window.morning and last < window.morning:
            return True
        if local_now >= window.evening and last < window.evening:
            return True
        return False

    def next_trading_day_morning(self, instant: datetime) -> datetime:
        local = self.to_local(instant)
        day = local + timedelta(days=1)
        while day.weekday() not in self.trading_weekdays:
            day += timedelta(days=1)
        return self.trading_window_for(day).morning

    def next_scheduled_instant(self, now: datetime) -> datetime:
        """Next morning or evening threshold, rolling over weekends."""
        local = self.to_local(now)
        if not self.is_trading_day(local):
            return self.next_trading_day_morning(local)

        window = self.trading_window_for(local)
        if local < window.morning:
            return window.morning
        if local < window.evening:
            return window.evening
        return self.next_trading_day_morning(local)

    def format_local(self, instant: datetime) -> str:
        return self.to_local(instant).strftime("%d %b %Y, %I:%M %p %Z")


def get_market_calendar() -> MarketCalendar:
    from stockfolio.core.config import settings

    return MarketCalendar.from_settings(settings)
