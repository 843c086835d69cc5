"""
Retry with backoff and circuit breaking.

Provides retry helpers for sync and async callables, a thread-safe
circuit breaker, and a decorator combining both with error recording.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import wraps
from threading import Lock
from typing import Any, ParamSpec, TypeVar, cast

from quantforge_guard.config.settings import GuardSettings
from quantforge_guard.errors import CircuitOpenError, OperationTimeoutError
from quantforge_guard.errors.classification import ErrorCategory
from quantforge_guard.errors.manager import ErrorManager
from quantforge_guard.utilities.backoff_policy import BackoffMode, evaluate_backoff_delay
from quantforge_guard.utilities.logging_patterns import get_logger
from quantforge_guard.utilities.time_provider import Clock, SystemClock

logger = get_logger(__name__, component="resilience")

P = ParamSpec("P")
T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""

    retries: int = 3  # attempts after the first call
    base_delay: float = 1.0  # seconds
    mode: BackoffMode = BackoffMode.EXPONENTIAL
    max_delay: float | None = None  # seconds
    jitter: float = 0.0  # fraction of the delay added at random

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be non-negative")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return evaluate_backoff_delay(
            attempt=attempt,
            base_delay=self.base_delay,
            mode=self.mode,
            max_delay=self.max_delay,
            jitter=self.jitter,
        ).delay_seconds

    @classmethod
    def from_settings(cls, settings: GuardSettings, **overrides: Any) -> RetryConfig:
        values: dict[str, Any] = {"base_delay": settings.retry_backoff_base_seconds}
        values.update(overrides)
        return cls(**values)


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds
    expected_exception_types: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be non-negative")

    @classmethod
    def from_settings(cls, settings: GuardSettings, **overrides: Any) -> CircuitBreakerConfig:
        values: dict[str, Any] = {
            "failure_threshold": settings.circuit_breaker_failure_threshold,
            "recovery_timeout": settings.circuit_breaker_recovery_timeout_seconds,
        }
        values.update(overrides)
        return cls(**values)


class CircuitBreakerState(Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing recovery


_LEGAL_TRANSITIONS = frozenset(
    {
        (CircuitBreakerState.CLOSED, CircuitBreakerState.OPEN),
        (CircuitBreakerState.OPEN, CircuitBreakerState.HALF_OPEN),
        (CircuitBreakerState.HALF_OPEN, CircuitBreakerState.CLOSED),
        (CircuitBreakerState.HALF_OPEN, CircuitBreakerState.OPEN),
    }
)


class CircuitBreaker:
    """
    Fail fast while a dependency keeps failing.

    ``failure_threshold`` consecutive failures open the breaker. While open,
    calls are rejected with ``CircuitOpenError`` without invoking the
    wrapped function. After ``recovery_timeout`` seconds a single trial call
    is admitted (half-open); its success closes the breaker and resets the
    failure count, its failure reopens it.

    Only exceptions in ``expected_exception_types`` count as failures.
    Other exceptions, and cancellation, release a trial slot without
    counting either way. State is guarded by a lock that is never held
    while the wrapped function runs.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        name: str = "default",
        clock: Clock | None = None,
        error_manager: ErrorManager | None = None,
        category: ErrorCategory = ErrorCategory.NETWORK,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self.error_manager = error_manager
        self.category = category
        self._clock = clock or SystemClock()
        self._lock = Lock()
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_at: datetime | None = None
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def last_failure_at(self) -> datetime | None:
        with self._lock:
            return self._last_failure_at

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "last_failure_at": (
                    self._last_failure_at.isoformat() if self._last_failure_at else None
                ),
                "trial_in_flight": self._trial_in_flight,
            }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Call ``func`` through the breaker."""
        trial = self._admit()
        try:
            result = func(*args, **kwargs)
        except self.config.expected_exception_types as exc:
            self._record_failure(trial, exc)
            raise
        except BaseException:
            self._release(trial)
            raise
        self._record_success(trial)
        return result

    async def execute_async(
        self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs
    ) -> T:
        """Await ``func`` through the breaker; cancellation counts as neither outcome."""
        trial = self._admit()
        try:
            result = await func(*args, **kwargs)
        except self.config.expected_exception_types as exc:
            self._record_failure(trial, exc)
            raise
        except BaseException:
            self._release(trial)
            raise
        self._record_success(trial)
        return result

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new_state: CircuitBreakerState) -> None:
        # Caller holds self._lock
        edge = (self._state, new_state)
        if edge not in _LEGAL_TRANSITIONS:
            raise RuntimeError(
                f"Illegal circuit breaker transition {self._state.value} -> {new_state.value}"
            )
        self._state = new_state

    def _admit(self) -> bool:
        """Return True when the admitted call is the half-open trial."""
        with self._lock:
            if self._state is CircuitBreakerState.CLOSED:
                return False

            if self._state is CircuitBreakerState.OPEN:
                elapsed = self._clock.monotonic() - (self._opened_at or 0.0)
                if elapsed < self.config.recovery_timeout:
                    retry_after = self.config.recovery_timeout - elapsed
                    raise CircuitOpenError(
                        f"Circuit breaker '{self.name}' is open",
                        breaker=self.name,
                        retry_after=retry_after,
                    )
                self._transition(CircuitBreakerState.HALF_OPEN)
                self._trial_in_flight = True
                logger.info(
                    "Circuit breaker entering half-open state",
                    breaker=self.name,
                    circuit_breaker_state="half_open",
                    event="recovery_attempt",
                )
                return True

            if self._trial_in_flight:
                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' is testing recovery",
                    breaker=self.name,
                    retry_after=0.0,
                )
            self._trial_in_flight = True
            return True

    def _record_success(self, trial: bool) -> None:
        with self._lock:
            if trial and self._state is CircuitBreakerState.HALF_OPEN:
                self._transition(CircuitBreakerState.CLOSED)
                self._trial_in_flight = False
                self._failure_count = 0
                self._opened_at = None
                logger.info(
                    "Circuit breaker closed after successful recovery",
                    breaker=self.name,
                    circuit_breaker_state="closed",
                    event="recovery",
                )
            elif self._state is CircuitBreakerState.CLOSED:
                self._failure_count = 0

    def _record_failure(self, trial: bool, error: BaseException) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_at = self._clock.now()
            failure_count = self._failure_count

            if trial and self._state is CircuitBreakerState.HALF_OPEN:
                self._transition(CircuitBreakerState.OPEN)
                self._trial_in_flight = False
                self._opened_at = self._clock.monotonic()
                opened = True
            elif (
                self._state is CircuitBreakerState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition(CircuitBreakerState.OPEN)
                self._opened_at = self._clock.monotonic()
                opened = True
            else:
                opened = False

        if opened:
            logger.warning(
                f"Circuit breaker opened after {failure_count} failures",
                breaker=self.name,
                circuit_breaker_state="open",
                failure_count=failure_count,
                error_type=error.__class__.__name__,
            )
        if self.error_manager is not None and isinstance(error, Exception):
            self.error_manager.handle_error(
                error,
                self.category,
                {"breaker": self.name, "failure_count": failure_count},
            )

    def _release(self, trial: bool) -> None:
        if not trial:
            return
        with self._lock:
            if self._state is CircuitBreakerState.HALF_OPEN:
                self._trial_in_flight = False


# ----------------------------------------------------------------------
# Retry helpers
# ----------------------------------------------------------------------


def _record_attempt_failure(
    error_manager: ErrorManager | None,
    circuit_breaker: CircuitBreaker | None,
    error: Exception,
    category: ErrorCategory,
    context: Mapping[str, Any] | None,
    attempt: int,
    max_attempts: int,
) -> None:
    if error_manager is None:
        return
    if (
        circuit_breaker is not None
        and circuit_breaker.error_manager is error_manager
        and not isinstance(error, CircuitOpenError)
    ):
        return  # already recorded by the breaker
    details = dict(context or {})
    details.update(attempt=attempt, max_attempts=max_attempts)
    error_manager.handle_error(error, category, details)


async def _await_with_timeout(
    func: Callable[[], Awaitable[T]], timeout: float | None, operation: str
) -> T:
    if timeout is None:
        return await func()
    try:
        async with asyncio.timeout(timeout) as deadline:
            return await func()
    except TimeoutError as exc:
        if not deadline.expired():
            raise
        raise OperationTimeoutError(
            f"Operation timed out after {timeout}s",
            operation=operation,
            timeout_seconds=timeout,
        ) from exc


def with_retry(
    func: Callable[[], T],
    config: RetryConfig | None = None,
    *,
    fallback: Callable[[], T] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    circuit_breaker: CircuitBreaker | None = None,
    error_manager: ErrorManager | None = None,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    context: Mapping[str, Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` up to ``config.retries + 1`` times.

    Before retry ``n`` the helper sleeps ``base_delay * 2 ** (n - 1)``
    (exponential) or ``base_delay * n`` (linear). Every failed attempt is
    recorded in ``error_manager``. Retrying stops early when
    ``should_retry`` returns False or the circuit breaker is open. Once
    attempts run out, ``fallback`` supplies the result if given; otherwise
    the last error is re-raised. A failing fallback is logged and the last
    original error is raised.
    """
    config = config or RetryConfig()
    max_attempts = config.max_attempts
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            if circuit_breaker is not None:
                return circuit_breaker.execute(func)
            return func()
        except CircuitOpenError as exc:
            last_error = exc
            _record_attempt_failure(
                error_manager, circuit_breaker, exc, category, context, attempt, max_attempts
            )
            logger.warning(
                "Circuit open, abandoning retries",
                operation="retry",
                attempt=attempt,
                max_attempts=max_attempts,
            )
            break
        except Exception as exc:
            last_error = exc
            _record_attempt_failure(
                error_manager, circuit_breaker, exc, category, context, attempt, max_attempts
            )
            if should_retry is not None and not should_retry(exc):
                break
            if attempt < max_attempts:
                delay = config.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed: {exc}. "
                    f"Retrying in {delay:.2f} seconds...",
                    operation="retry",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error_type=exc.__class__.__name__,
                    retry_delay=delay,
                )
                sleep(delay)

    if last_error is None:
        raise RuntimeError("Retry attempts exhausted without a captured error")
    if fallback is not None:
        try:
            result = fallback()
        except Exception as fallback_error:
            logger.error(
                f"Fallback failed: {fallback_error}",
                operation="retry_fallback",
                error_type=fallback_error.__class__.__name__,
            )
            raise last_error
        logger.info(
            f"Using fallback after {last_error.__class__.__name__}",
            operation="retry_fallback",
            fallback_used=True,
        )
        return result
    raise last_error


async def with_retry_async(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    fallback: Callable[[], Awaitable[T] | T] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    circuit_breaker: CircuitBreaker | None = None,
    error_manager: ErrorManager | None = None,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    context: Mapping[str, Any] | None = None,
    timeout: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Async counterpart of ``with_retry``; the backoff sleep is cancellable.

    With ``timeout`` each attempt is bounded to that many seconds. An
    attempt that runs out raises ``OperationTimeoutError``, which counts as
    a failed attempt (and as a breaker failure).
    """
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be positive")
    config = config or RetryConfig()
    operation = str((context or {}).get("function", "with_retry_async"))
    max_attempts = config.max_attempts
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            if circuit_breaker is not None:
                return await circuit_breaker.execute_async(
                    _await_with_timeout, func, timeout, operation
                )
            return await _await_with_timeout(func, timeout, operation)
        except CircuitOpenError as exc:
            last_error = exc
            _record_attempt_failure(
                error_manager, circuit_breaker, exc, category, context, attempt, max_attempts
            )
            logger.warning(
                "Circuit open, abandoning retries",
                operation="retry",
                attempt=attempt,
                max_attempts=max_attempts,
            )
            break
        except Exception as exc:
            last_error = exc
            _record_attempt_failure(
                error_manager, circuit_breaker, exc, category, context, attempt, max_attempts
            )
            if should_retry is not None and not should_retry(exc):
                break
            if attempt < max_attempts:
                delay = config.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed: {exc}. "
                    f"Retrying in {delay:.2f} seconds...",
                    operation="retry",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error_type=exc.__class__.__name__,
                    retry_delay=delay,
                )
                await sleep(delay)

    if last_error is None:
        raise RuntimeError("Retry attempts exhausted without a captured error")
    if fallback is not None:
        try:
            result = fallback()
            if inspect.isawaitable(result):
                result = await result
        except Exception as fallback_error:
            logger.error(
                f"Fallback failed: {fallback_error}",
                operation="retry_fallback",
                error_type=fallback_error.__class__.__name__,
            )
            raise last_error
        logger.info(
            f"Using fallback after {last_error.__class__.__name__}",
            operation="retry_fallback",
            fallback_used=True,
        )
        return cast(T, result)
    raise last_error


# Decorator for automatic error handling
def with_error_handling(
    config: RetryConfig | None = None,
    *,
    fallback: Callable[..., Any] | None = None,
    error_manager: ErrorManager | None = None,
    circuit_breaker: CircuitBreaker | None = None,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
) -> Callable[[Callable[P, Any]], Callable[P, Any]]:
    """Decorator adding retry, fallback and error recording to sync or async functions."""

    def decorator(func: Callable[P, Any]) -> Callable[P, Any]:
        context = {"function": func.__qualname__}

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                return await with_retry_async(
                    lambda: func(*args, **kwargs),
                    config,
                    fallback=(lambda: fallback(*args, **kwargs)) if fallback else None,
                    circuit_breaker=circuit_breaker,
                    error_manager=error_manager,
                    category=category,
                    context=context,
                )

            return async_wrapper

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
            return with_retry(
                lambda: func(*args, **kwargs),
                config,
                fallback=(lambda: fallback(*args, **kwargs)) if fallback else None,
                circuit_breaker=circuit_breaker,
                error_manager=error_manager,
                category=category,
                context=context,
            )

        return wrapper

    return decorator


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "RetryConfig",
    "with_error_handling",
    "with_retry",
    "with_retry_async",
]
