"""JSON logging formatter with structured field support and secret redaction."""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "asctime",
    }
)

# Provider key shapes (sk-..., sk-ant-..., AIza...)
_SECRET_VALUE_PATTERN = re.compile(r"\b(?:sk-(?:ant-)?[A-Za-z0-9_-]{8,}|AIza[0-9A-Za-z_-]{20,})")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter that flattens structured ``extra`` fields into the entry."""

    SENSITIVE_KEYS = {
        "api_key",
        "apikey",
        "secret",
        "password",
        "token",
        "access_token",
        "authorization",
        "cookie",
        "credentials",
        "payload",
        "private_key",
        "privatekey",
    }

    def __init__(
        self,
        *,
        ensure_ascii: bool = False,
        sort_keys: bool = False,
        timestamp_format: str = "%Y-%m-%dT%H:%M:%S.%fZ",
    ) -> None:
        super().__init__()
        self.ensure_ascii = ensure_ascii
        self.sort_keys = sort_keys
        self.timestamp_format = timestamp_format

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single JSON line."""
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_text(record.getMessage()),
            "module": record.module,
            "function": record.funcName if record.funcName is not None else "<module>",
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self._format_exception(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_") or key in log_entry:
                continue
            if key == "extra":
                continue
            log_entry[key] = value

        # Fields attached as a single ``extra`` mapping
        nested_extra = getattr(record, "extra", None)
        if isinstance(nested_extra, dict):
            for key, value in nested_extra.items():
                log_entry.setdefault(key, value)

        log_entry = self._redact_data(log_entry)

        try:
            return json.dumps(
                log_entry,
                ensure_ascii=self.ensure_ascii,
                default=str,
                sort_keys=self.sort_keys,
            )
        except (TypeError, ValueError) as exc:
            fallback_entry = {
                "timestamp": log_entry["timestamp"],
                "level": log_entry["level"],
                "logger": log_entry["logger"],
                "message": f"JSON serialization failed: {exc}",
                "original_message": str(log_entry.get("message", "")),
            }
            return json.dumps(fallback_entry, ensure_ascii=self.ensure_ascii, default=str)

    def _redact_data(self, data: Any) -> Any:
        """Recursively redact sensitive keys and secret-looking values."""
        if isinstance(data, dict):
            return {
                k: "[REDACTED]" if str(k).lower() in self.SENSITIVE_KEYS else self._redact_data(v)
                for k, v in data.items()
            }
        if isinstance(data, (list, tuple)):
            return [self._redact_data(item) for item in data]
        if isinstance(data, str):
            return _redact_text(data)
        return data

    def _format_timestamp(self, created: float) -> str:
        return datetime.fromtimestamp(created, UTC).strftime(self.timestamp_format)

    def _format_exception(self, exc_info: Any) -> dict[str, Any]:
        exc_type, exc_value, _ = exc_info
        return {
            "type": exc_type.__name__ if exc_type else "Unknown",
            "message": _redact_text(str(exc_value)) if exc_value else "",
            "module": getattr(exc_type, "__module__", "") if exc_type else "",
        }


def _redact_text(text: str) -> str:
    return _SECRET_VALUE_PATTERN.sub("[REDACTED]", text)


__all__ = ["StructuredJSONFormatter"]
