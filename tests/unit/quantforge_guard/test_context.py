"""Tests for the explicitly constructed guard context and package facade."""

from __future__ import annotations

from pathlib import Path

import pytest

import quantforge_guard
from quantforge_guard import GuardContext, InputKind
from quantforge_guard.config.settings import GuardSettings
from quantforge_guard.errors.classification import ErrorCategory
from quantforge_guard.errors.handler import CircuitBreakerConfig, RetryConfig
from quantforge_guard.utilities.time_provider import FakeClock


class TestLifecycle:
    def test_context_manager_starts_and_stops(
        self, guard_settings: GuardSettings, fake_clock: FakeClock
    ) -> None:
        context = GuardContext(guard_settings, fake_clock, background_sweep=False)
        assert not context.running

        with context as active:
            assert active is context
            assert context.running

        assert not context.running

    def test_background_sweeper_thread(
        self, guard_settings: GuardSettings, fake_clock: FakeClock
    ) -> None:
        context = GuardContext(guard_settings, fake_clock).init()
        sweeper = context._sweeper
        assert sweeper is not None and sweeper.is_alive()

        context.shutdown()

        assert not sweeper.is_alive()

    def test_shutdown_flushes_history(
        self, guard_settings: GuardSettings, fake_clock: FakeClock, tmp_path: Path
    ) -> None:
        path = tmp_path / "errors.json"
        settings = guard_settings.model_copy(update={"error_history_path": path})

        with GuardContext(settings, fake_clock, background_sweep=False) as context:
            context.handle_error("x")
            path.unlink()

        assert path.exists()


class TestValidation:
    def test_rate_limits_use_default_budgets(
        self, guard_context: GuardContext
    ) -> None:
        results = [
            guard_context.validate(InputKind.CHAT_MESSAGE, "hello", identity="u1")
            for _ in range(11)
        ]

        assert all(r.is_valid for r in results[:10])
        assert results[10].errors[0].field == "rateLimit"

    def test_settings_override_budget(
        self, guard_settings: GuardSettings, fake_clock: FakeClock
    ) -> None:
        settings = guard_settings.model_copy(update={"rate_limit_max_requests": 2})
        with GuardContext(settings, fake_clock, background_sweep=False) as context:
            allowed = [context.validate("symbol", "EURUSD", identity="u1").is_valid for _ in range(3)]

        assert allowed == [True, True, False]

    def test_sweep_rate_limits(self, guard_context: GuardContext, fake_clock: FakeClock) -> None:
        guard_context.validate("chat", "hello", identity="u1")
        guard_context.validate("symbol", "EURUSD", identity="u1")

        assert guard_context.sweep_rate_limits() == 0
        fake_clock.advance(60)
        assert guard_context.sweep_rate_limits() == 2

    def test_sanitize_uses_configured_length(
        self, guard_settings: GuardSettings, fake_clock: FakeClock
    ) -> None:
        settings = guard_settings.model_copy(update={"max_input_length": 4})
        context = GuardContext(settings, fake_clock, background_sweep=False)
        assert context.sanitize("<b>abcdef</b>") == "abcd"


class TestResilience:
    def test_circuit_breaker_registry(self, guard_context: GuardContext) -> None:
        first = guard_context.circuit_breaker("broker")

        assert guard_context.circuit_breaker("broker") is first
        assert first.config.failure_threshold == 5
        assert guard_context.breakers() == {"broker": first}

    def test_breaker_failures_reach_error_history(self, guard_context: GuardContext) -> None:
        breaker = guard_context.circuit_breaker(
            "broker", CircuitBreakerConfig(failure_threshold=1)
        )

        def down() -> None:
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            breaker.execute(down)

        history = guard_context.error_manager.get_history(ErrorCategory.NETWORK)
        assert len(history) == 1

    def test_retry_records_into_context_manager(self, guard_context: GuardContext) -> None:
        attempts: list[int] = []

        def func() -> str:
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionError("down")
            return "ok"

        result = guard_context.retry(
            func, config=RetryConfig(retries=1, base_delay=0), sleep=lambda _: None
        )

        assert result == "ok"
        assert len(guard_context.error_manager.get_history()) == 1

    @pytest.mark.asyncio
    async def test_retry_async(self, guard_context: GuardContext) -> None:
        async def func() -> int:
            return 7

        assert await guard_context.retry_async(func) == 7


class TestFacade:
    def test_stateless_validate(self) -> None:
        result = quantforge_guard.validate("chat", "<script>alert(1)</script>")
        assert not result.is_valid

    def test_identity_requires_context(self) -> None:
        with pytest.raises(ValueError):
            quantforge_guard.validate("chat", "hello", identity="u1")

    def test_validate_through_context(self, guard_context: GuardContext) -> None:
        result = quantforge_guard.validate("chat", "hello", "u1", context=guard_context)
        assert result.is_valid
