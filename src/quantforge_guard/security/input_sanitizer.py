"""Input sanitization for untrusted free text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from quantforge_guard.security.patterns import (
    DEFAULT_MAX_INPUT_LENGTH,
    SANITIZE_CHAR_REFERENCES,
    SANITIZE_EVENT_HANDLERS,
    SANITIZE_MARKUP,
    SANITIZE_PROTOCOLS,
    SANITIZE_SCRIPT_CALLS,
)


@dataclass(frozen=True)
class SanitizePolicy:
    """Which constructs to strip and how long the output may be."""

    max_length: int = DEFAULT_MAX_INPUT_LENGTH
    strip_markup: bool = True
    strip_protocols: bool = True
    strip_event_handlers: bool = True
    strip_script_calls: bool = True
    strip_char_references: bool = True

    def __post_init__(self) -> None:
        if self.max_length < 0:
            raise ValueError("max_length must be non-negative")

    def removals(self) -> tuple[re.Pattern[str], ...]:
        selected: list[re.Pattern[str]] = []
        if self.strip_markup:
            selected.append(SANITIZE_MARKUP)
        if self.strip_protocols:
            selected.append(SANITIZE_PROTOCOLS)
        if self.strip_event_handlers:
            selected.append(SANITIZE_EVENT_HANDLERS)
        if self.strip_script_calls:
            selected.append(SANITIZE_SCRIPT_CALLS)
        if self.strip_char_references:
            selected.append(SANITIZE_CHAR_REFERENCES)
        return tuple(selected)


DEFAULT_POLICY = SanitizePolicy()


def sanitize(text: Any, policy: SanitizePolicy | None = None) -> str:
    """
    Strip disallowed markup and protocols from ``text``.

    Removals repeat until the text stops changing, so fragments such as
    ``<scr<script>ipt>`` cannot reassemble into a live construct. The
    result is then truncated to ``policy.max_length`` code points and
    trimmed of surrounding whitespace. The function is idempotent and
    never raises; ``None`` and empty input yield ``""``.

    Args:
        text: Untrusted input. Non-string values are converted with ``str``.
        policy: Removal and length policy; defaults to ``DEFAULT_POLICY``.

    Returns:
        The sanitized string.
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    if not text:
        return ""

    policy = policy or DEFAULT_POLICY
    removals = policy.removals()

    previous = None
    cleaned = text
    while cleaned != previous:
        previous = cleaned
        for pattern in removals:
            cleaned = pattern.sub("", cleaned)

    return cleaned[: policy.max_length].strip()


__all__ = ["DEFAULT_POLICY", "SanitizePolicy", "sanitize"]
