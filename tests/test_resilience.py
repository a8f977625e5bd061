"""
Tests for provider resilience (circuit breaker, guarded retries).
"""

from __future__ import annotations

import time

import pytest

from stockfolio.core.exceptions import ProviderError, QuoteNotFoundError
from stockfolio.core.rate_limiter import RateLimiter, get_rate_limiter
from stockfolio.services.data_providers.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    ProviderGuard,
)


# =============================================================================
# Circuit Breaker Tests
# =============================================================================


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_initial_state_is_closed(self):
        """Circuit starts in closed state."""
        breaker = CircuitBreaker(name="test")
        assert breaker.state == CircuitState.CLOSED
        assert not breaker.is_open

    def test_opens_after_threshold_failures(self):
        """Circuit opens after reaching failure threshold."""
        breaker = CircuitBreaker(failure_threshold=3, name="test")

        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()
        assert breaker.is_open

    def test_guard_raises_when_open(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="test")
        breaker.record_failure()

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.guard()

        assert exc_info.value.details["provider"] == "test"
        assert exc_info.value.error_code == "CIRCUIT_OPEN"

    def test_half_open_after_recovery_timeout(self, mocker):
        """Once the timeout passes a trial call is allowed through."""
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, name="test")
        breaker.record_failure()

        mocker.patch(
            "stockfolio.services.data_providers.resilience.time.monotonic",
            return_value=time.monotonic() + 31,
        )

        assert breaker.state == CircuitState.HALF_OPEN
        breaker.guard()

    def test_success_closes_circuit(self):
        breaker = CircuitBreaker(failure_threshold=2, name="test")
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats()["failure_count"] == 1

    def test_excluded_exceptions_do_not_count(self):
        """Not-found answers are not outages."""
        breaker = CircuitBreaker(failure_threshold=1, name="test", excluded_exceptions=(QuoteNotFoundError,))

        breaker.record_failure(QuoteNotFoundError())

        assert breaker.state == CircuitState.CLOSED

    def test_half_open_admits_one_trial_call(self, mocker):
        """Concurrent callers wait on the trial call instead of all hitting the provider."""
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, name="test")
        breaker.record_failure()
        mocker.patch(
            "stockfolio.services.data_providers.resilience.time.monotonic",
            return_value=time.monotonic() + 31,
        )

        breaker.guard()
        with pytest.raises(CircuitOpenError):
            breaker.guard()

    def test_successful_trial_reopens_traffic(self, mocker):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, name="test")
        breaker.record_failure()
        mocker.patch(
            "stockfolio.services.data_providers.resilience.time.monotonic",
            return_value=time.monotonic() + 31,
        )

        breaker.guard()
        breaker.record_success()

        breaker.guard()
        breaker.guard()
        assert breaker.state == CircuitState.CLOSED

    def test_released_trial_allows_another(self, mocker):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, name="test")
        breaker.record_failure()
        mocker.patch(
            "stockfolio.services.data_providers.resilience.time.monotonic",
            return_value=time.monotonic() + 31,
        )

        breaker.guard()
        breaker.release_trial()

        breaker.guard()


# =============================================================================
# Provider Guard Tests)
# =============================================================================


class TestProviderGuard:
    """Tests for ProviderGuard."""

    @pytest.fixture
    def guard(self) -> ProviderGuard:
        return ProviderGuard(name="test", max_attempts=3, base_delay=0, max_delay=0, failure_threshold=2)

    async def test_retries_transient_errors(self, guard: ProviderGuard):
        """ConnectionError is retried until the call succeeds."""
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset by peer")
            return "ok"

        assert await guard.run(flaky) == "ok"
        assert len(calls) == 3
        assert guard.circuit.state == CircuitState.CLOSED

    async def test_does_not_retry_classified_errors(self, guard: ProviderGuard):
        calls = []

        async def missing():
            calls.append(1)
            raise QuoteNotFoundError()

        with pytest.raises(QuoteNotFoundError):
            await guard.run(missing)

        assert len(calls) == 1

    async def test_not_found_never_opens_circuit(self, guard: ProviderGuard):
        async def missing():
            raise QuoteNotFoundError()

        for _ in range(5):
            with pytest.raises(QuoteNotFoundError):
                await guard.run(missing)

        assert guard.circuit.state == CircuitState.CLOSED

    async def test_repeated_failures_open_circuit(self, guard: ProviderGuard):
        """After the threshold the provider is no longer called."""
        calls = []

        async def broken():
            calls.append(1)
            raise ProviderError()

        for _ in range(2):
            with pytest.raises(ProviderError):
                await guard.run(broken)

        with pytest.raises(CircuitOpenError):
            await guard.run(broken)

        assert len(calls) == 2


# =============================================================================
# Rate Limiter Tests
# =============================================================================


class TestRateLimiter:
    """Tests for the provider token bucket."""

    def test_burst_then_wait(self):
        limiter = RateLimiter("test", calls_per_second=1.0, burst_size=2)

        assert limiter.try_acquire() == 0.0
        assert limiter.try_acquire() == 0.0
        assert limiter.try_acquire() > 0.0

    def test_acquire_times_out(self):
        limiter = RateLimiter("test", calls_per_second=0.01, burst_size=1)
        limiter.try_acquire()

        assert limiter.acquire_sync(timeout=0.1) is False

    def test_named_limiters_are_shared(self):
        assert get_rate_limiter("shared-test") is get_rate_limiter("shared-test")
