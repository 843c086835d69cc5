"""
Structured error classification.

Categories, severities and actions are closed enums; every decision about
a failure is a ``match`` over them rather than string comparison.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from quantforge_guard.utilities.time_provider import utc_now


class ErrorCategory(str, Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    DATABASE = "database"
    SECURITY = "security"
    UI = "ui"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity ordered ``LOW < MEDIUM < HIGH < CRITICAL``."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


class ErrorAction(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"
    SKIP = "skip"
    ABORT = "abort"


_CRITICAL_PATTERN = re.compile(r"critical|fatal|permission denied|access denied", re.IGNORECASE)
_RETRYABLE_PATTERN = re.compile(
    r"timeout|timed out|network|connection|temporar|rate.?limit", re.IGNORECASE
)
_NON_RETRYABLE_PATTERN = re.compile(
    r"permission|unauthori[sz]ed|forbidden|not found|validation", re.IGNORECASE
)
_RETRYABLE_TYPES: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError)
_NEVER_RETRYABLE = frozenset(
    {ErrorCategory.VALIDATION, ErrorCategory.AUTHENTICATION, ErrorCategory.SECURITY}
)


@dataclass(frozen=True)
class StructuredError:
    """Canonical, immutable description of one failure."""

    id: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    timestamp: datetime
    retryable: bool
    action: ErrorAction
    context: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    user_message: str | None = None
    technical_message: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "retryable": self.retryable,
            "action": self.action.value,
            "context": dict(self.context),
            "user_message": self.user_message,
            "technical_message": self.technical_message,
            "error_type": self.error_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StructuredError:
        return cls(
            id=str(data["id"]),
            message=str(data["message"]),
            category=ErrorCategory(data["category"]),
            severity=ErrorSeverity(data["severity"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            retryable=bool(data["retryable"]),
            action=ErrorAction(data["action"]),
            context=MappingProxyType(dict(data.get("context") or {})),
            user_message=data.get("user_message"),
            technical_message=data.get("technical_message"),
            error_type=data.get("error_type"),
        )


def determine_severity(category: ErrorCategory, message: str) -> ErrorSeverity:
    if _CRITICAL_PATTERN.search(message):
        return ErrorSeverity.CRITICAL

    lowered = message.lower()
    match category:
        case ErrorCategory.SECURITY:
            return ErrorSeverity.HIGH
        case ErrorCategory.AUTHENTICATION:
            return ErrorSeverity.MEDIUM
        case ErrorCategory.DATABASE:
            return ErrorSeverity.HIGH if "connection" in lowered else ErrorSeverity.MEDIUM
        case ErrorCategory.NETWORK:
            return ErrorSeverity.LOW if "timeout" in lowered else ErrorSeverity.MEDIUM
        case ErrorCategory.VALIDATION | ErrorCategory.UI:
            return ErrorSeverity.LOW
        case ErrorCategory.UNKNOWN:
            return ErrorSeverity.MEDIUM


def is_retryable(
    category: ErrorCategory, message: str, error: BaseException | None = None
) -> bool:
    """Decide retryability from category, message wording and exception type."""
    if category in _NEVER_RETRYABLE:
        return False

    if error is not None and isinstance(error, _RETRYABLE_TYPES):
        return True
    if _RETRYABLE_PATTERN.search(message):
        return True
    if _NON_RETRYABLE_PATTERN.search(message):
        return False

    lowered = message.lower()
    match category:
        case ErrorCategory.NETWORK:
            return True
        case ErrorCategory.DATABASE:
            return "constraint" not in lowered and "duplicate" not in lowered
        case _:
            return False


def default_action(
    category: ErrorCategory, severity: ErrorSeverity, retryable: bool
) -> ErrorAction:
    if severity is ErrorSeverity.CRITICAL:
        return ErrorAction.ABORT

    match category:
        case ErrorCategory.NETWORK:
            return ErrorAction.RETRY
        case ErrorCategory.VALIDATION:
            return ErrorAction.SKIP
        case ErrorCategory.UI:
            return ErrorAction.FALLBACK
        case ErrorCategory.SECURITY | ErrorCategory.AUTHENTICATION:
            return ErrorAction.ABORT
        case ErrorCategory.DATABASE | ErrorCategory.UNKNOWN:
            return ErrorAction.RETRY if retryable else ErrorAction.ABORT


def user_message_for(category: ErrorCategory, severity: ErrorSeverity) -> str:
    """Category appropriate text that is safe to show to an end user."""
    match category:
        case ErrorCategory.NETWORK:
            if severity >= ErrorSeverity.HIGH:
                return "Network connection failed. Please check your internet connection."
            return "Temporary network issue. Retrying..."
        case ErrorCategory.DATABASE:
            if severity >= ErrorSeverity.HIGH:
                return "Database error occurred. Please try again later."
            return "Data save issue. Your data is safe."
        case ErrorCategory.AUTHENTICATION:
            return "Authentication required. Please sign in again."
        case ErrorCategory.VALIDATION:
            return "Please check your input and try again."
        case ErrorCategory.SECURITY:
            return "Security check failed. Please contact support."
        case ErrorCategory.UI:
            return "Display issue occurred. Refreshing may help."
        case ErrorCategory.UNKNOWN:
            return "An error occurred. Please try again."


def _status_code(error: BaseException) -> int | None:
    for attribute in ("status_code", "status"):
        value = getattr(error, attribute, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def infer_category(error: BaseException | str) -> ErrorCategory:
    """Best-effort category for an exception raised without one."""
    if isinstance(error, str):
        return ErrorCategory.UNKNOWN

    declared = getattr(error, "category", None)
    if isinstance(declared, ErrorCategory):
        return declared

    status = _status_code(error)
    if status is not None:
        if status in (401, 403):
            return ErrorCategory.AUTHENTICATION
        if status in (408, 429) or status >= 500:
            return ErrorCategory.NETWORK
        if 400 <= status < 500:
            return ErrorCategory.VALIDATION

    if isinstance(error, PermissionError):
        return ErrorCategory.SECURITY
    if isinstance(error, ConnectionError | TimeoutError):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError | TypeError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


def _new_error_id(timestamp: datetime) -> str:
    return f"error_{int(timestamp.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def classify(
    error: BaseException | str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    context: Mapping[str, Any] | None = None,
    *,
    severity: ErrorSeverity | None = None,
    retryable: bool | None = None,
    action: ErrorAction | None = None,
    user_message: str | None = None,
    timestamp: datetime | None = None,
) -> StructuredError:
    """
    Build a ``StructuredError`` for ``error``.

    Severity, retryability, action and user message fall back to category
    defaults refined by the message text; explicit keyword arguments win.
    ``UNKNOWN`` is refined through ``infer_category`` when ``error`` is an
    exception.

    Args:
        error: The exception or a plain message.
        category: Caller supplied category.
        context: Extra structured detail; copied and frozen.
        severity: Overrides the computed severity.
        retryable: Overrides the computed retryability.
        action: Overrides the computed action.
        user_message: Overrides the category message.
        timestamp: Creation time; defaults to now (UTC).

    Returns:
        The immutable StructuredError.
    """
    message = error if isinstance(error, str) else (str(error) or type(error).__name__)
    exc = None if isinstance(error, str) else error

    if category is ErrorCategory.UNKNOWN and exc is not None:
        category = infer_category(exc)

    resolved_severity = severity or determine_severity(category, message)
    resolved_retryable = retryable if retryable is not None else is_retryable(category, message, exc)
    resolved_action = action or default_action(category, resolved_severity, resolved_retryable)
    created_at = timestamp or utc_now()

    return StructuredError(
        id=_new_error_id(created_at),
        message=message,
        category=category,
        severity=resolved_severity,
        timestamp=created_at,
        retryable=resolved_retryable,
        action=resolved_action,
        context=MappingProxyType(dict(context or {})),
        user_message=user_message or user_message_for(category, resolved_severity),
        technical_message=message,
        error_type=type(exc).__name__ if exc is not None else None,
    )


__all__ = [
    "ErrorAction",
    "ErrorCategory",
    "ErrorSeverity",
    "StructuredError",
    "classify",
    "default_action",
    "determine_severity",
    "infer_category",
    "is_retryable",
    "user_message_for",
]
