"""
Central error manager: bounded history, category handlers and notifications.

An ``ErrorManager`` is constructed explicitly and passed to the code that
needs it (see ``GuardContext``); there is no module-level instance.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from threading import Lock
from typing import Any

from quantforge_guard.config.settings import GuardSettings
from quantforge_guard.errors.classification import (
    ErrorAction,
    ErrorCategory,
    ErrorSeverity,
    StructuredError,
    classify,
)
from quantforge_guard.utilities.logging_patterns import get_logger
from quantforge_guard.utilities.time_provider import Clock, SystemClock

logger = get_logger(__name__, component="errors")

ErrorCallback = Callable[[StructuredError], None]

RECENT_WINDOW = timedelta(hours=1)
RECENT_LIMIT = 10
CRITICAL_LIMIT = 5


@dataclass(frozen=True)
class Notification:
    """User-facing message handed to the notification sink."""

    message: str
    level: str
    duration_ms: int
    error_id: str
    severity: ErrorSeverity


NotificationSink = Callable[[Notification], None]


def notification_for(error: StructuredError) -> Notification:
    match error.severity:
        case ErrorSeverity.CRITICAL | ErrorSeverity.HIGH:
            level, duration_ms = "error", 8000
        case ErrorSeverity.MEDIUM:
            level, duration_ms = "error", 5000
        case ErrorSeverity.LOW:
            level, duration_ms = "info", 3000
    return Notification(
        message=error.user_message or "An error occurred. Please try again.",
        level=level,
        duration_ms=duration_ms,
        error_id=error.id,
        severity=error.severity,
    )


_LOG_LEVELS = {
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.LOW: logging.INFO,
}


class ErrorManager:
    """Classify, record and dispatch failures."""

    def __init__(
        self,
        max_history: int = 1000,
        *,
        persisted_history_size: int = 100,
        history_path: Path | str | None = None,
        notification_sink: NotificationSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._lock = Lock()
        self._history: deque[StructuredError] = deque(maxlen=max_history)
        self._persisted: deque[StructuredError] = deque(maxlen=max(persisted_history_size, 0))
        self._handlers: dict[ErrorCategory, list[ErrorCallback]] = {}
        self._notification_sink = notification_sink
        self._history_path = Path(history_path) if history_path is not None else None
        self._clock = clock or SystemClock()
        # Earlier runs keep their entries; new errors append after them
        self._persisted.extend(self.load_persisted_history())

    @classmethod
    def from_settings(cls, settings: GuardSettings, clock: Clock | None = None) -> ErrorManager:
        return cls(
            settings.max_history_size,
            persisted_history_size=settings.persisted_history_size,
            history_path=settings.error_history_path,
            clock=clock,
        )

    @property
    def max_history(self) -> int:
        return self._history.maxlen or 0

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    def handle_error(
        self,
        error: BaseException | str | StructuredError,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Mapping[str, Any] | None = None,
        *,
        severity: ErrorSeverity | None = None,
        retryable: bool | None = None,
        action: ErrorAction | None = None,
        user_message: str | None = None,
        notify: bool = False,
    ) -> StructuredError:
        """
        Classify ``error``, append it to the history and dispatch it.

        Already structured errors are recorded as they are. Registered
        handlers for the error's category run in registration order; one
        that raises is logged and skipped. With ``notify`` the user message
        goes to the notification sink.
        """
        if isinstance(error, StructuredError):
            structured = error
        else:
            structured = classify(
                error,
                category,
                context,
                severity=severity,
                retryable=retryable,
                action=action,
                user_message=user_message,
                timestamp=self._clock.now(),
            )

        self._store(structured)
        self._log(structured)
        if notify:
            self._notify(structured)
        self._run_handlers(structured)
        return structured

    def handle_network_error(
        self, error: BaseException | str, context: Mapping[str, Any] | None = None
    ) -> StructuredError:
        return self.handle_error(
            error,
            ErrorCategory.NETWORK,
            context,
            severity=ErrorSeverity.MEDIUM,
            retryable=True,
            action=ErrorAction.RETRY,
            notify=True,
        )

    def handle_validation_error(
        self, error: BaseException | str, context: Mapping[str, Any] | None = None
    ) -> StructuredError:
        return self.handle_error(
            error,
            ErrorCategory.VALIDATION,
            context,
            severity=ErrorSeverity.LOW,
            retryable=False,
            action=ErrorAction.SKIP,
            notify=True,
        )

    def handle_security_error(
        self, error: BaseException | str, context: Mapping[str, Any] | None = None
    ) -> StructuredError:
        return self.handle_error(
            error,
            ErrorCategory.SECURITY,
            context,
            severity=ErrorSeverity.HIGH,
            retryable=False,
            action=ErrorAction.ABORT,
            notify=True,
        )

    # ------------------------------------------------------------------
    # Handlers and sink
    # ------------------------------------------------------------------

    def register_handler(self, category: ErrorCategory, handler: ErrorCallback) -> None:
        with self._lock:
            self._handlers.setdefault(category, []).append(handler)

    def remove_handler(self, category: ErrorCategory, handler: ErrorCallback) -> bool:
        """Remove one registration of ``handler``; return False if it was not registered."""
        with self._lock:
            handlers = self._handlers.get(category, [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def set_notification_sink(self, sink: NotificationSink | None) -> None:
        self._notification_sink = sink

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_history(
        self,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[StructuredError]:
        """Return recorded errors, oldest first, filtered by the given criteria."""
        with self._lock:
            history = list(self._history)
        if category is not None:
            history = [error for error in history if error.category is category]
        if severity is not None:
            history = [error for error in history if error.severity is severity]
        if since is not None:
            history = [error for error in history if error.timestamp >= since]
        if until is not None:
            history = [error for error in history if error.timestamp <= until]
        return history

    def get_stats(self) -> dict[str, Any]:
        """Totals per category and severity plus recent and critical errors."""
        with self._lock:
            history = list(self._history)

        by_category: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        for error in history:
            by_category[error.category.value] = by_category.get(error.category.value, 0) + 1
            by_severity[error.severity.value] = by_severity.get(error.severity.value, 0) + 1

        cutoff = self._clock.now() - RECENT_WINDOW
        recent = [error for error in history if error.timestamp > cutoff]
        critical = [error for error in history if error.severity is ErrorSeverity.CRITICAL]

        return {
            "total": len(history),
            "by_category": by_category,
            "by_severity": by_severity,
            "recent": recent[-RECENT_LIMIT:],
            "critical": critical[-CRITICAL_LIMIT:],
        }

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._persisted.clear()
        if self._history_path is not None:
            try:
                self._history_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(
                    f"Failed to remove persisted error history: {exc}",
                    operation="clear_history",
                    path=str(self._history_path),
                )

    def export_history(self) -> list[dict[str, Any]]:
        with self._lock:
            return [error.to_dict() for error in self._history]

    def persisted_history(self) -> list[StructuredError]:
        with self._lock:
            return list(self._persisted)

    def load_persisted_history(self) -> list[StructuredError]:
        """Read the persisted copy from ``history_path``; missing or corrupt files yield []."""
        if self._history_path is None or not self._history_path.exists():
            return []
        try:
            raw = json.loads(self._history_path.read_text(encoding="utf-8"))
            return [StructuredError.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                f"Ignoring unreadable error history: {exc}",
                operation="load_history",
                path=str(self._history_path),
            )
            return []

    def flush(self) -> None:
        """Write the persisted copy to ``history_path`` if one is configured."""
        if self._history_path is None:
            return
        with self._lock:
            payload = [error.to_dict() for error in self._persisted]
        try:
            self._history_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._history_path.parent, prefix=".errors-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, default=str)
            os.replace(tmp_name, self._history_path)
        except OSError as exc:
            logger.warning(
                f"Failed to persist error history: {exc}",
                operation="flush_history",
                path=str(self._history_path),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _store(self, error: StructuredError) -> None:
        with self._lock:
            self._history.append(error)
            if self._persisted.maxlen:
                self._persisted.append(error)
        self.flush()

    def _log(self, error: StructuredError) -> None:
        logger.log(
            _LOG_LEVELS[error.severity],
            f"{error.category.value} error: {error.technical_message or error.message}",
            error_id=error.id,
            category=error.category.value,
            severity=error.severity.value,
            retryable=error.retryable,
            action=error.action.value,
            error_context=dict(error.context),
        )

    def _notify(self, error: StructuredError) -> None:
        sink = self._notification_sink
        if sink is None or not error.user_message:
            return
        try:
            sink(notification_for(error))
        except Exception:
            logger.exception("Notification sink failed", operation="notify", error_id=error.id)

    def _run_handlers(self, error: StructuredError) -> None:
        with self._lock:
            handlers = list(self._handlers.get(error.category, ()))
        for handler in handlers:
            try:
                handler(error)
            except Exception:
                logger.exception(
                    "Error handler failed",
                    operation="run_error_handler",
                    category=error.category.value,
                    error_id=error.id,
                )


__all__ = [
    "ErrorCallback",
    "ErrorManager",
    "Notification",
    "NotificationSink",
    "notification_for",
]
