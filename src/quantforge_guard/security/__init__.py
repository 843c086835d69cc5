"""Sanitization, threat scanning and rate limiting for untrusted input."""

from quantforge_guard.security.input_sanitizer import DEFAULT_POLICY, SanitizePolicy, sanitize
from quantforge_guard.security.patterns import DangerousCategory
from quantforge_guard.security.rate_limiter import (
    FixedWindowRateLimiter,
    RateLimitDecision,
    RateLimitRecord,
)
from quantforge_guard.security.threat_scanner import (
    UNSAFE_CONTENT_MESSAGE,
    ScanPolicy,
    ThreatScanner,
)

__all__ = [
    "DEFAULT_POLICY",
    "DangerousCategory",
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RateLimitRecord",
    "SanitizePolicy",
    "ScanPolicy",
    "ThreatScanner",
    "UNSAFE_CONTENT_MESSAGE",
    "sanitize",
]
