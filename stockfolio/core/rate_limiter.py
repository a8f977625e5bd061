"""Token bucket rate limiting for market data provider calls."""

from __future__ import annotations

import threading
import time

from stockfolio.core.logging import get_logger


logger = get_logger("core.rate_limiter")


class RateLimiter:
    """
    Token bucket shared by every provider call.

    Provider calls run on worker threads, so acquisition is thread-safe and
    blocking; async callers acquire from inside the executor.
    """

    def __init__(
        self,
        name: str,
        calls_per_second: float = 2.0,
        burst_size: int = 5,
    ):
        self.name = name
        self.calls_per_second = calls_per_second
        self.burst_size = burst_size
        self.tokens = float(burst_size)
        self.last_update = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.burst_size, self.tokens + elapsed * self.calls_per_second)
        self.last_update = now

    def try_acquire(self) -> float:
        """
        Take a token if one is available.

        Returns 0.0 on success, otherwise the seconds until a token frees up.
        """
        with self._lock:
            self._refill()
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return 0.0
            return (1.0 - self.tokens) / self.calls_per_second

    def acquire_sync(self, timeout: float = 30.0) -> bool:
        """Block until a token is taken. False if ``timeout`` would be exceeded."""
        start = time.monotonic()

        while True:
            wait_time = self.try_acquire()
            if wait_time == 0.0:
                return True

            if time.monotonic() - start + wait_time > timeout:
                logger.warning(f"Rate limiter {self.name} timeout after {timeout}s")
                return False

            logger.debug(f"Rate limiter {self.name} waiting {wait_time:.2f}s")
            time.sleep(min(wait_time, 0.5))


_limiters: dict[str, RateLimiter] = {}
_limiters_lock = threading.Lock()

PROVIDER_LIMITER = "market_data"


def get_rate_limiter(
    name: str,
    calls_per_second: float = 2.0,
    burst_size: int = 5,
) -> RateLimiter:
    """Get or create a named limiter. Rate arguments only apply on creation."""
    with _limiters_lock:
        if name not in _limiters:
            _limiters[name] = RateLimiter(name, calls_per_second, burst_size)
            logger.info(f"Created rate limiter '{name}': {calls_per_second}/s, burst={burst_size}")
        return _limiters[name]


def get_provider_limiter() -> RateLimiter:
    """
    Limiter shared by every market data source.

    Yahoo does not publish limits, so the defaults stay conservative.
    """
    from stockfolio.core.config import settings

    return get_rate_limiter(
        PROVIDER_LIMITER,
        calls_per_second=settings.provider_calls_per_second,
        burst_size=settings.provider_burst_size,
    )
