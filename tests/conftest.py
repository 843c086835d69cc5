"""Shared fixtures for the quantforge-guard test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from quantforge_guard.config.settings import GuardSettings, get_settings
from quantforge_guard.context import GuardContext
from quantforge_guard.errors.manager import ErrorManager
from quantforge_guard.utilities.time_provider import FakeClock

FIXED_EPOCH = 1_700_000_000.0


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start_time=FIXED_EPOCH)


@pytest.fixture
def guard_settings() -> GuardSettings:
    """Settings with explicit values so the environment cannot leak in."""
    return GuardSettings(
        rate_limit_window_ms=60_000,
        rate_limit_max_requests=None,
        rate_limit_sweep_interval_ms=None,
        max_history_size=1000,
        persisted_history_size=100,
        error_history_path=None,
        circuit_breaker_failure_threshold=5,
        circuit_breaker_recovery_timeout_ms=60_000,
        retry_backoff_base_ms=1000,
        max_input_length=10_000,
        log_level="INFO",
        log_json=False,
    )


@pytest.fixture
def error_manager(fake_clock: FakeClock) -> ErrorManager:
    return ErrorManager(clock=fake_clock)


@pytest.fixture
def guard_context(guard_settings: GuardSettings, fake_clock: FakeClock) -> Iterator[GuardContext]:
    context = GuardContext(guard_settings, fake_clock, background_sweep=False)
    context.init()
    yield context
    context.shutdown()
