"""Tracks which users have been active recently.

The scheduler only spends provider quota on real-time refreshes while
someone is using the app.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional


class ActiveSessionTracker:
    """Last-seen timestamps per user, expiring after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def touch(self, user_key: str) -> bool:
        """Record activity. Returns True when the user was idle before this call."""
        now = self._clock()
        with self._lock:
            previous = self._last_seen.get(user_key)
            self._last_seen[user_key] = now
            return previous is None or now - previous > self.ttl_seconds

    def active_count(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, seen in self._last_seen.items() if now - seen > self.ttl_seconds]
            for key in expired:
                del self._last_seen[key]
            return len(self._last_seen)

    def clear(self) -> None:
        with self._lock:
            self._last_seen.clear()


_tracker: Optional[ActiveSessionTracker] = None


def get_session_tracker() -> ActiveSessionTracker:
    global _tracker
    if _tracker is None:
        from stockfolio.core.config import settings

        _tracker = ActiveSessionTracker(ttl_seconds=settings.active_session_ttl_seconds)
    return _tracker
