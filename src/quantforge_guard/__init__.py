"""
quantforge-guard - input validation and resilience for a trading-robot generator

Validates untrusted chat prompts, strategy parameters, backtest settings,
API keys and generated MQL5 code, and wraps fallible infrastructure calls
with structured error handling, retry and circuit breaking.
"""

from __future__ import annotations

from typing import Any

from quantforge_guard.context import GuardContext
from quantforge_guard.errors import (
    CircuitOpenError,
    ErrorAction,
    ErrorCategory,
    ErrorSeverity,
    GuardError,
    StructuredError,
    classify,
)
from quantforge_guard.errors.handler import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    RetryConfig,
    with_retry,
    with_retry_async,
)
from quantforge_guard.errors.manager import ErrorManager, Notification
from quantforge_guard.security import (
    FixedWindowRateLimiter,
    SanitizePolicy,
    ScanPolicy,
    ThreatScanner,
    sanitize,
)
from quantforge_guard.validation import (
    InputKind,
    ValidationError,
    ValidationOrchestrator,
    ValidationResult,
    ValidationRule,
)

__version__ = "0.1.0"

# No limiters: stateless apart from compiled patterns
_stateless_orchestrator = ValidationOrchestrator()


def validate(
    kind: InputKind | str,
    payload: Any,
    identity: str | None = None,
    *,
    context: GuardContext | None = None,
) -> ValidationResult:
    """
    Validate ``payload`` as an input of ``kind``.

    Rate limiting needs per-identity state, so passing ``identity``
    requires a ``GuardContext``.
    """
    if context is not None:
        return context.validate(kind, payload, identity)
    if identity is not None:
        raise ValueError("Rate limiting by identity requires a GuardContext")
    return _stateless_orchestrator.validate(kind, payload)


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CircuitOpenError",
    "ErrorAction",
    "ErrorCategory",
    "ErrorManager",
    "ErrorSeverity",
    "FixedWindowRateLimiter",
    "GuardContext",
    "GuardError",
    "InputKind",
    "Notification",
    "RetryConfig",
    "SanitizePolicy",
    "ScanPolicy",
    "StructuredError",
    "ThreatScanner",
    "ValidationError",
    "ValidationOrchestrator",
    "ValidationResult",
    "ValidationRule",
    "__version__",
    "classify",
    "sanitize",
    "validate",
    "with_retry",
    "with_retry_async",
]
