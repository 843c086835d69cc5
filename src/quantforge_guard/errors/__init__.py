"""
Exception hierarchy for infrastructure and programming failures.

Validation failures are never raised; they are returned as
``ValidationResult`` values. The exceptions here cover the failures that
flow through the error manager, retry helpers and circuit breakers.
"""

import sys
import traceback
from typing import Any, ClassVar

from quantforge_guard.errors.classification import (
    ErrorAction,
    ErrorCategory,
    ErrorSeverity,
    StructuredError,
    classify,
    infer_category,
)
from quantforge_guard.utilities.time_provider import utc_now


def _capture_traceback() -> str:
    """Return the active traceback, or an empty string outside an except block."""

    exc_type, exc_value, exc_tb = sys.exc_info()
    if exc_type is not None and exc_tb is not None:
        return "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
    return ""


class GuardError(Exception):
    """Base exception for the guard layer."""

    category: ClassVar[ErrorCategory] = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        recoverable: bool = True,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.recoverable = recoverable
        self.timestamp = utc_now()
        self.traceback = _capture_traceback()
        self.original_error = original_error

    def add_context(self, **kwargs: Any) -> "GuardError":
        """Add additional context to the error"""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "context": self.context,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "traceback": self.traceback,
        }


class NetworkError(GuardError):
    """Raised when a call to a remote dependency fails"""

    category = ErrorCategory.NETWORK

    def __init__(
        self, message: str, url: str | None = None, status_code: int | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, error_code="NETWORK_ERROR", **kwargs)
        self.status_code = status_code
        if url:
            self.add_context(url=url, status_code=status_code)


class AuthenticationError(GuardError):
    """Raised when credentials are missing, invalid or expired"""

    category = ErrorCategory.AUTHENTICATION

    def __init__(self, message: str, provider: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, error_code="AUTH_ERROR", recoverable=False, **kwargs)
        if provider:
            self.add_context(provider=provider)


class ConfigurationError(GuardError):
    """Raised when there are configuration issues"""

    def __init__(self, message: str, config_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, error_code="CONFIG_ERROR", recoverable=False, **kwargs)
        if config_key:
            self.add_context(config_key=config_key)


class OperationTimeoutError(GuardError):
    """Raised when an operation exceeds its time budget."""

    category = ErrorCategory.NETWORK

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        timeout_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code="TIMEOUT_ERROR", **kwargs)
        if operation is not None:
            self.add_context(
                operation=operation,
                timeout_seconds=timeout_seconds if timeout_seconds is not None else 0.0,
            )


class CircuitOpenError(GuardError):
    """Raised instead of calling a dependency whose circuit breaker is open."""

    category = ErrorCategory.NETWORK

    def __init__(
        self, message: str, breaker: str | None = None, retry_after: float | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, error_code="CIRCUIT_OPEN", **kwargs)
        self.retry_after = retry_after
        if breaker:
            self.add_context(breaker=breaker, retry_after=retry_after)


__all__ = [
    "AuthenticationError",
    "CircuitOpenError",
    "ConfigurationError",
    "ErrorAction",
    "ErrorCategory",
    "ErrorSeverity",
    "GuardError",
    "NetworkError",
    "OperationTimeoutError",
    "StructuredError",
    "classify",
    "infer_category",
]
