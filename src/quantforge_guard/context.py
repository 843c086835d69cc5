"""
Explicitly constructed runtime context.

``GuardContext`` owns the stateful pieces (rate-limit tables, error
history, circuit breakers) and hands them to call sites instead of
keeping them in module globals. Create one per process or per test,
call ``init()`` before use and ``shutdown()`` at teardown, or use it as
a context manager.
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType
from typing import Any, TypeVar

from quantforge_guard.config.settings import GuardSettings, get_settings
from quantforge_guard.errors.classification import ErrorCategory, StructuredError
from quantforge_guard.errors.handler import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    with_retry,
    with_retry_async,
)
from quantforge_guard.errors.manager import ErrorManager, NotificationSink
from quantforge_guard.security.input_sanitizer import SanitizePolicy, sanitize
from quantforge_guard.utilities.logging_patterns import get_logger
from quantforge_guard.utilities.time_provider import Clock, SystemClock
from quantforge_guard.validation.orchestrator import (
    InputKind,
    ValidationOrchestrator,
    build_rate_limiters,
)
from quantforge_guard.validation.types import ValidationResult

logger = get_logger(__name__, component="context")

T = TypeVar("T")


class GuardContext:
    """Holds the validation pipeline, error manager and breakers for one scope."""

    def __init__(
        self,
        settings: GuardSettings | None = None,
        clock: Clock | None = None,
        *,
        notification_sink: NotificationSink | None = None,
        background_sweep: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.error_manager = ErrorManager.from_settings(self.settings, clock=self.clock)
        if notification_sink is not None:
            self.error_manager.set_notification_sink(notification_sink)
        self.limiters = build_rate_limiters(self.settings, self.clock)
        self.orchestrator = ValidationOrchestrator(
            self.limiters, max_message_length=self.settings.max_input_length
        )
        self.sanitize_policy = SanitizePolicy(max_length=self.settings.max_input_length)
        self.retry_config = RetryConfig.from_settings(self.settings)
        self._background_sweep = background_sweep
        self._breakers: dict[str, CircuitBreaker] = {}
        self._breakers_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def init(self) -> GuardContext:
        if self._running:
            return self
        self._stop_event.clear()
        if self._background_sweep:
            self._sweeper = threading.Thread(
                target=self._sweep_loop, name="quantforge-guard-sweeper", daemon=True
            )
            self._sweeper.start()
        self._running = True
        logger.info(
            "Guard context started",
            operation="context_init",
            window_seconds=self.settings.rate_limit_window_seconds,
            background_sweep=self._background_sweep,
        )
        return self

    def shutdown(self, timeout: float | None = 5.0) -> None:
        if not self._running:
            return
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None
        self.error_manager.flush()
        self._running = False
        logger.info("Guard context stopped", operation="context_shutdown")

    def __enter__(self) -> GuardContext:
        return self.init()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()

    def _sweep_loop(self) -> None:
        interval = self.settings.rate_limit_sweep_interval_seconds
        while not self._stop_event.wait(interval):
            try:
                self.sweep_rate_limits()
            except Exception:
                logger.exception("Rate limit sweep failed", operation="rate_limit_sweep")

    # ------------------------------------------------------------------
    # Validation surface
    # ------------------------------------------------------------------

    def validate(
        self, kind: InputKind | str, payload: Any, identity: str | None = None
    ) -> ValidationResult:
        return self.orchestrator.validate(kind, payload, identity)

    def sanitize(self, text: Any, policy: SanitizePolicy | None = None) -> str:
        return sanitize(text, policy or self.sanitize_policy)

    def sweep_rate_limits(self, now: float | None = None) -> int:
        """Remove expired rate-limit records from every limiter."""
        return sum(limiter.sweep(now) for limiter in self.limiters.values())

    # ------------------------------------------------------------------
    # Error and resilience surface
    # ------------------------------------------------------------------

    def handle_error(
        self,
        error: BaseException | str | StructuredError,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Mapping[str, Any] | None = None,
        **options: Any,
    ) -> StructuredError:
        return self.error_manager.handle_error(error, category, context, **options)

    def circuit_breaker(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        category: ErrorCategory = ErrorCategory.NETWORK,
    ) -> CircuitBreaker:
        """Return the breaker registered under ``name``, creating it on first use."""
        with self._breakers_lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    config or CircuitBreakerConfig.from_settings(self.settings),
                    name=name,
                    clock=self.clock,
                    error_manager=self.error_manager,
                    category=category,
                )
                self._breakers[name] = breaker
            return breaker

    def breakers(self) -> dict[str, CircuitBreaker]:
        with self._breakers_lock:
            return dict(self._breakers)

    def retry(self, func: Callable[[], T], **kwargs: Any) -> T:
        kwargs.setdefault("error_manager", self.error_manager)
        config = kwargs.pop("config", None) or self.retry_config
        return with_retry(func, config, **kwargs)

    async def retry_async(self, func: Callable[[], Awaitable[T]], **kwargs: Any) -> T:
        kwargs.setdefault("error_manager", self.error_manager)
        config = kwargs.pop("config", None) or self.retry_config
        return await with_retry_async(func, config, **kwargs)


__all__ = ["GuardContext"]
