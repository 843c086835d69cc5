"""Tests for retry helpers and the error handling decorator."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import pytest

from quantforge_guard.errors import CircuitOpenError, OperationTimeoutError
from quantforge_guard.errors.classification import ErrorCategory
from quantforge_guard.errors.handler import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    with_error_handling,
    with_retry,
    with_retry_async,
)
from quantforge_guard.errors.manager import ErrorManager
from quantforge_guard.utilities.backoff_policy import BackoffMode
from quantforge_guard.utilities.time_provider import FakeClock


def flaky(failures: int, exc: Exception | None = None) -> tuple[Callable[[], str], list[int]]:
    """Return a callable that fails ``failures`` times before succeeding."""
    calls: list[int] = []

    def func() -> str:
        calls.append(1)
        if len(calls) <= failures:
            raise exc or ConnectionError(f"attempt {len(calls)} failed")
        return "ok"

    return func, calls


class TestRetryConfig:
    def test_attempts_and_delays(self) -> None:
        config = RetryConfig(retries=3, base_delay=0.5)

        assert config.max_attempts == 4
        assert [config.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_linear_mode(self) -> None:
        config = RetryConfig(base_delay=0.5, mode=BackoffMode.LINEAR)
        assert [config.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 1.5]

    def test_negative_values_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryConfig(retries=-1)
        with pytest.raises(ValueError):
            RetryConfig(base_delay=-0.1)


class TestWithRetry:
    def test_succeeds_after_two_failures_with_exponential_delays(self) -> None:
        func, calls = flaky(2)
        delays: list[float] = []

        result = with_retry(func, RetryConfig(retries=2, base_delay=0.5), sleep=delays.append)

        assert result == "ok"
        assert len(calls) == 3
        assert delays == [0.5, 1.0]

    def test_linear_delays(self) -> None:
        func, _ = flaky(3)
        delays: list[float] = []
        config = RetryConfig(retries=3, base_delay=0.5, mode=BackoffMode.LINEAR)

        with_retry(func, config, sleep=delays.append)

        assert delays == [0.5, 1.0, 1.5]

    def test_exhausted_retries_raise_last_error(self) -> None:
        func, calls = flaky(10)
        delays: list[float] = []

        with pytest.raises(ConnectionError, match="attempt 3 failed"):
            with_retry(func, RetryConfig(retries=2, base_delay=0.1), sleep=delays.append)

        assert len(calls) == 3
        assert len(delays) == 2

    def test_fallback_is_used_after_exhaustion(self) -> None:
        func, _ = flaky(10)

        result = with_retry(
            func, RetryConfig(retries=1, base_delay=0), fallback=lambda: "cached", sleep=lambda _: None
        )

        assert result == "cached"

    def test_failing_fallback_raises_original_error(self) -> None:
        func, _ = flaky(10)

        def fallback() -> str:
            raise KeyError("no cache")

        with pytest.raises(ConnectionError):
            with_retry(func, RetryConfig(retries=1, base_delay=0), fallback=fallback, sleep=lambda _: None)

    def test_should_retry_false_stops_immediately(self) -> None:
        func, calls = flaky(10, ValueError("bad request"))
        delays: list[float] = []

        with pytest.raises(ValueError):
            with_retry(
                func,
                RetryConfig(retries=5),
                should_retry=lambda exc: not isinstance(exc, ValueError),
                sleep=delays.append,
            )

        assert len(calls) == 1
        assert delays == []

    def test_every_failed_attempt_is_recorded(self, error_manager: ErrorManager) -> None:
        func, _ = flaky(2)

        with_retry(
            func,
            RetryConfig(retries=2, base_delay=0),
            error_manager=error_manager,
            category=ErrorCategory.NETWORK,
            context={"operation": "fetch_quotes"},
            sleep=lambda _: None,
        )

        history = error_manager.get_history()
        assert len(history) == 2
        assert [e.context["attempt"] for e in history] == [1, 2]
        assert history[0].context["operation"] == "fetch_quotes"
        assert history[0].category is ErrorCategory.NETWORK

    def test_open_breaker_stops_retrying(self, fake_clock: FakeClock) -> None:
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1), clock=fake_clock)
        func, calls = flaky(10)
        delays: list[float] = []

        with pytest.raises(CircuitOpenError):
            with_retry(
                func, RetryConfig(retries=3), circuit_breaker=breaker, sleep=delays.append
            )

        assert len(calls) == 1
        assert len(delays) == 1

    def test_shared_manager_records_breaker_failures_once(
        self, error_manager: ErrorManager, fake_clock: FakeClock
    ) -> None:
        breaker = CircuitBreaker(
            CircuitBreakerConfig(failure_threshold=10), clock=fake_clock, error_manager=error_manager
        )
        func, _ = flaky(2)

        with_retry(
            func,
            RetryConfig(retries=2, base_delay=0),
            circuit_breaker=breaker,
            error_manager=error_manager,
            sleep=lambda _: None,
        )

        assert len(error_manager.get_history()) == 2

    def test_real_sleep_waits_between_attempts(self) -> None:
        stamps: list[float] = []

        def func() -> str:
            stamps.append(time.monotonic())
            if len(stamps) < 3:
                raise ConnectionError("down")
            return "ok"

        with_retry(func, RetryConfig(retries=2, base_delay=0.05))

        first_gap = stamps[1] - stamps[0]
        second_gap = stamps[2] - stamps[1]
        assert 0.045 <= first_gap < 1.0
        assert 0.095 <= second_gap < 1.0


class TestWithRetryAsync:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self) -> None:
        calls: list[int] = []
        delays: list[float] = []

        async def func() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("down")
            return "ok"

        async def sleep(delay: float) -> None:
            delays.append(delay)

        result = await with_retry_async(func, RetryConfig(retries=2, base_delay=0.5), sleep=sleep)

        assert result == "ok"
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_async_and_sync_fallbacks(self) -> None:
        async def failing() -> str:
            raise ConnectionError("down")

        async def async_fallback() -> str:
            return "async-cached"

        async def no_sleep(_: float) -> None:
            return None

        config = RetryConfig(retries=1, base_delay=0)
        assert (
            await with_retry_async(failing, config, fallback=async_fallback, sleep=no_sleep)
            == "async-cached"
        )
        assert (
            await with_retry_async(failing, config, fallback=lambda: "sync-cached", sleep=no_sleep)
            == "sync-cached"
        )

    @pytest.mark.asyncio
    async def test_backoff_sleep_is_cancellable(self) -> None:
        calls: list[int] = []

        async def failing() -> str:
            calls.append(1)
            raise ConnectionError("down")

        task = asyncio.create_task(with_retry_async(failing, RetryConfig(retries=3, base_delay=30)))
        for _ in range(5):
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_slow_attempt_times_out_and_is_retried(
        self, error_manager: ErrorManager
    ) -> None:
        calls: list[int] = []

        async def func() -> str:
            calls.append(1)
            if len(calls) == 1:
                await asyncio.sleep(10)
            return "ok"

        async def no_sleep(_: float) -> None:
            return None

        result = await with_retry_async(
            func,
            RetryConfig(retries=1, base_delay=0),
            error_manager=error_manager,
            category=ErrorCategory.NETWORK,
            timeout=0.05,
            sleep=no_sleep,
        )

        assert result == "ok"
        assert len(calls) == 2
        [recorded] = error_manager.get_history()
        assert recorded.error_type == "OperationTimeoutError"
        assert recorded.retryable

    @pytest.mark.asyncio
    async def test_exhausted_timeouts_raise_operation_timeout(self) -> None:
        async def hang() -> str:
            await asyncio.sleep(10)
            return "never"

        with pytest.raises(OperationTimeoutError) as exc_info:
            await with_retry_async(
                hang,
                RetryConfig(retries=0),
                context={"function": "fetch_quotes"},
                timeout=0.01,
            )

        assert exc_info.value.context == {"operation": "fetch_quotes", "timeout_seconds": 0.01}
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    @pytest.mark.asyncio
    async def test_timeout_error_from_the_call_is_not_relabelled(self) -> None:
        async def func() -> str:
            raise TimeoutError("upstream gave up")

        with pytest.raises(TimeoutError) as exc_info:
            await with_retry_async(func, RetryConfig(retries=0), timeout=5)

        assert not isinstance(exc_info.value, OperationTimeoutError)

    @pytest.mark.asyncio
    async def test_timeouts_count_as_breaker_failures(self, fake_clock: FakeClock) -> None:
        breaker = CircuitBreaker(
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout=60), clock=fake_clock
        )

        async def hang() -> str:
            await asyncio.sleep(10)
            return "never"

        with pytest.raises(OperationTimeoutError):
            await with_retry_async(
                hang, RetryConfig(retries=0), circuit_breaker=breaker, timeout=0.01
            )

        assert breaker.failure_count == 1
        with pytest.raises(CircuitOpenError):
            await breaker.execute_async(hang)

    @pytest.mark.asyncio
    async def test_non_positive_timeout_is_rejected(self) -> None:
        async def func() -> str:
            return "ok"

        with pytest.raises(ValueError):
            await with_retry_async(func, timeout=0)


class TestWithErrorHandling:
    def test_sync_function(self, error_manager: ErrorManager) -> None:
        attempts: list[int] = []

        @with_error_handling(
            RetryConfig(retries=1, base_delay=0),
            fallback=lambda symbol: f"{symbol}:stale",
            error_manager=error_manager,
        )
        def fetch(symbol: str) -> str:
            attempts.append(1)
            raise ConnectionError("down")

        assert fetch("EURUSD") == "EURUSD:stale"
        assert len(attempts) == 2
        assert error_manager.get_history()[0].context["function"].endswith("fetch")

    @pytest.mark.asyncio
    async def test_async_function(self) -> None:
        @with_error_handling(RetryConfig(retries=0))
        async def fetch(symbol: str) -> str:
            return symbol.lower()

        assert await fetch("EURUSD") == "eurusd"
