"""
Resilience for market data provider calls.

- CircuitBreaker: fail fast after consecutive provider failures.
- ProviderGuard: breaker plus tenacity retries for transient transport errors.

Usage:
    guard = ProviderGuard(name="yahooquery", max_attempts=3)
    payload = await guard.run(lambda: loop.run_in_executor(pool, fetch, "SBIN.NS"))
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from stockfolio.core.exceptions import ProviderError, QuoteNotFoundError
from stockfolio.core.logging import get_logger


logger = get_logger("data_providers.resilience")

T = TypeVar("T")

# Only these are worth another attempt; everything else is classified by the caller
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


class CircuitOpenError(ProviderError):
    """Circuit breaker is open; the provider is not being called."""

    error_code = "CIRCUIT_OPEN"
    message = "Market data provider temporarily disabled after repeated failures"


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Opens after ``failure_threshold`` consecutive failures and lets a single
    trial call through once ``recovery_timeout`` seconds have passed. Other calls
    are rejected until that trial call settles.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    name: str = "circuit"
    excluded_exceptions: tuple[type, ...] = ()

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False)

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def guard(self) -> None:
        """Raise CircuitOpenError while open, or while a half-open trial call is running."""
        state = self.state
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return
        if state != CircuitState.CLOSED:
            remaining = self.recovery_timeout - (time.monotonic() - (self._opened_at or 0.0))
            raise CircuitOpenError(
                details={"provider": self.name, "retry_in_seconds": round(max(remaining, 0.0), 1)}
            )

    def release_trial(self) -> None:
        self._trial_in_flight = False

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info(f"[{self.name}] Circuit closed after a successful trial call")
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._trial_in_flight = False

    def record_failure(self, error: BaseException | None = None) -> None:
        self._trial_in_flight = False
        if error is not None and isinstance(error, self.excluded_exceptions):
            return

        self._failure_count += 1
        if self._failure_count >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(f"[{self.name}] Circuit OPEN after {self._failure_count} failures")
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
        else:
            logger.debug(f"[{self.name}] Failure {self._failure_count}/{self.failure_threshold}")

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
        }


class ProviderGuard:
    """Circuit breaker around a tenacity retry loop."""

    def __init__(
        self,
        name: str,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
    ):
        self.name = name
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.circuit = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name=name,
            excluded_exceptions=(QuoteNotFoundError,),
        )

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        self.circuit.guard()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential_jitter(initial=self.base_delay, max=self.max_delay),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    result = await func()
        except asyncio.CancelledError:
            self.circuit.release_trial()
            raise
        except Exception as e:
            self.circuit.record_failure(e)
            raise
        self.circuit.record_success()
        return result
