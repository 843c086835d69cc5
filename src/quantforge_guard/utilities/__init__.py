"""
Shared utilities.
"""

from .backoff_policy import BackoffMode, evaluate_backoff_delay
from .logging_patterns import get_logger, log_operation
from .time_provider import Clock, FakeClock, SystemClock, utc_now

__all__ = [
    "BackoffMode",
    "Clock",
    "FakeClock",
    "SystemClock",
    "evaluate_backoff_delay",
    "get_logger",
    "log_operation",
    "utc_now",
]
