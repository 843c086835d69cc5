"""Deterministic backoff policy helpers."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class BackoffMode(str, Enum):
    """How the delay grows between retry attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"


@dataclass(frozen=True)
class BackoffDecision:
    """Result of evaluating a backoff attempt."""

    attempt: int
    delay_seconds: float
    capped: bool


def evaluate_backoff_delay(
    *,
    attempt: int,
    base_delay: float,
    mode: BackoffMode = BackoffMode.EXPONENTIAL,
    max_delay: float | None = None,
    jitter: float = 0.0,
    random_fn: Callable[[], float] | None = None,
) -> BackoffDecision:
    """Pure evaluation of the delay before retry ``attempt`` without reading clocks.

    ``attempt`` is 1 for the first retry. Exponential mode yields
    ``base * 2 ** (attempt - 1)``; linear mode yields ``base * attempt``.
    """

    if attempt < 1 or base_delay <= 0:
        return BackoffDecision(attempt=attempt, delay_seconds=0.0, capped=False)

    if mode is BackoffMode.EXPONENTIAL:
        raw_delay = base_delay * (2 ** (attempt - 1))
    else:
        raw_delay = base_delay * attempt

    capped = max_delay is not None and raw_delay >= max_delay
    delay = min(raw_delay, max_delay) if max_delay is not None else raw_delay

    if jitter > 0 and delay > 0:
        rng = random_fn or random.random
        delay += delay * jitter * rng()

    return BackoffDecision(attempt=attempt, delay_seconds=float(delay), capped=capped)


__all__ = [
    "BackoffDecision",
    "BackoffMode",
    "evaluate_backoff_delay",
]
