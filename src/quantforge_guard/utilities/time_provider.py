"""Clock abstractions for deterministic time handling.

Rate-limit windows and circuit-breaker cooldowns read time through a
``Clock`` so tests can drive them with ``FakeClock`` instead of sleeping.
"""

from __future__ import annotations

import time as time_module
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@runtime_checkable
class Clock(Protocol):
    """Protocol for retrieving current time values."""

    def now(self) -> datetime:
        """Return the current time (timezone-aware UTC)."""

    def time(self) -> float:
        """Return the current Unix timestamp (seconds since epoch)."""

    def monotonic(self) -> float:
        """Return a monotonic clock value for measuring durations."""


class SystemClock:
    """Clock backed by the system time sources."""

    def now(self) -> datetime:
        return utc_now()

    def time(self) -> float:
        return time_module.time()

    def monotonic(self) -> float:
        return time_module.monotonic()


class FakeClock:
    """Deterministic clock for tests that can be advanced or reset."""

    def __init__(
        self,
        initial: datetime | None = None,
        *,
        start_time: float | None = None,
    ) -> None:
        if initial is not None:
            now = normalize_to_utc(initial)
        elif start_time is not None:
            now = datetime.fromtimestamp(float(start_time), UTC)
        else:
            now = utc_now()

        self._now = now
        self._monotonic = now.timestamp()

    def now(self) -> datetime:
        return self._now

    def time(self) -> float:
        return self._now.timestamp()

    def monotonic(self) -> float:
        return self._monotonic

    def set_time(self, current: datetime | float) -> None:
        if isinstance(current, datetime):
            self._now = normalize_to_utc(current)
        else:
            self._now = datetime.fromtimestamp(float(current), UTC)
        self._monotonic = self._now.timestamp()

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("advance() requires a non-negative duration")
        delta = float(seconds)
        self._now = self._now + timedelta(seconds=delta)
        self._monotonic += delta


__all__ = [
    "Clock",
    "SystemClock",
    "FakeClock",
    "normalize_to_utc",
    "utc_now",
]
