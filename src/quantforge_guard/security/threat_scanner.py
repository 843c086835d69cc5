"""
Layered detection of unsafe content in chat messages and generated code.

The scanner is stateless apart from its policy: identical input always
produces an identical verdict. Rejections carry one generic message and
drop any warnings gathered so far, so callers cannot learn which rule
fired. The detection category is logged for operators; the payload never is.
"""

from __future__ import annotations

import re
from collections.abc import Collection
from dataclasses import dataclass, field, replace

from quantforge_guard.security.patterns import (
    DANGEROUS_OPERATIONS,
    MQL5_ENTRY_POINTS,
    OBFUSCATION_PATTERN,
    OBFUSCATION_THRESHOLD,
    PROMPT_INJECTION_PATTERNS,
    SUSPICIOUS_KEYWORD_THRESHOLD,
    SUSPICIOUS_KEYWORDS,
    XSS_PATTERNS,
    DangerousCategory,
)
from quantforge_guard.utilities.logging_patterns import get_logger
from quantforge_guard.validation.types import ValidationResult

logger = get_logger(__name__, component="security")

UNSAFE_CONTENT_MESSAGE = "contains potentially unsafe content"

_ENTRY_POINT_PATTERN = re.compile(r"\b(?:" + "|".join(MQL5_ENTRY_POINTS) + r")\s*\(")


@dataclass(frozen=True)
class ScanPolicy:
    """Tunable thresholds and toggles for the heuristic stages."""

    obfuscation_threshold: int = OBFUSCATION_THRESHOLD
    keyword_threshold: int = SUSPICIOUS_KEYWORD_THRESHOLD
    reject_obfuscation: bool = False
    reject_suspicious_keywords: bool = False
    denied_categories: frozenset[DangerousCategory] = field(
        default_factory=lambda: frozenset(DangerousCategory)
    )
    detect_prompt_injection: bool = False
    require_entry_point: bool = False

    @classmethod
    def for_chat(cls) -> ScanPolicy:
        return cls(detect_prompt_injection=True)

    @classmethod
    def for_code(cls) -> ScanPolicy:
        return cls(require_entry_point=True)

    def without_categories(self, categories: Collection[DangerousCategory]) -> ScanPolicy:
        return replace(self, denied_categories=self.denied_categories - frozenset(categories))


class ThreatScanner:
    """Classify text as safe, suspicious (warnings) or rejected (one error)."""

    def __init__(self, policy: ScanPolicy | None = None) -> None:
        self.policy = policy or ScanPolicy()

    def scan(self, text: str | None, field: str = "input", label: str = "Input") -> ValidationResult:
        """
        Run every detection stage over ``text``.

        Stages run in order: XSS patterns, obfuscation count, dangerous
        platform operations, suspicious keywords, then the optional prompt
        injection and entry point checks. The first rejecting stage ends the
        scan.

        Args:
            text: Raw, unsanitized input.
            field: Field name reported on a rejection.
            label: Human readable subject used in messages.

        Returns:
            A ``ValidationResult`` with at most one error.
        """
        if not text:
            return ValidationResult.ok()

        if any(pattern.search(text) for pattern in XSS_PATTERNS):
            return self._reject(field, label, "xss")

        warnings: list[str] = []
        policy = self.policy

        obfuscation_hits = len(OBFUSCATION_PATTERN.findall(text))
        if obfuscation_hits > policy.obfuscation_threshold:
            if policy.reject_obfuscation:
                return self._reject(field, label, "obfuscation")
            warnings.append(f"{label} contains potentially obfuscated content")

        category = self.find_dangerous_operation(text)
        if category is not None:
            return self._reject(field, label, category.value)

        lowered = text.lower()
        keyword_hits = sum(1 for keyword in SUSPICIOUS_KEYWORDS if keyword in lowered)
        if keyword_hits > policy.keyword_threshold:
            if policy.reject_suspicious_keywords:
                return self._reject(field, label, "suspicious_keywords")
            warnings.append(f"{label} contains suspicious content")

        if policy.detect_prompt_injection and any(
            pattern.search(text) for pattern in PROMPT_INJECTION_PATTERNS
        ):
            logger.info(
                "Prompt injection phrasing detected",
                operation="threat_scan",
                field_name=field,
                detection="prompt_injection",
            )
            warnings.append(f"{label} resembles an attempt to override assistant instructions")

        if policy.require_entry_point and not _ENTRY_POINT_PATTERN.search(text):
            warnings.append(
                f"{label} does not define an MQL5 entry point ({', '.join(MQL5_ENTRY_POINTS)})"
            )

        return ValidationResult.ok(warnings)

    def find_dangerous_operation(self, text: str) -> DangerousCategory | None:
        """Return the first denied category whose pattern occurs in ``text``."""
        for category, pattern in DANGEROUS_OPERATIONS.items():
            if category in self.policy.denied_categories and pattern.search(text):
                return category
        return None

    def _reject(self, field: str, label: str, detection: str) -> ValidationResult:
        logger.warning(
            "Rejected unsafe input",
            operation="threat_scan",
            status="rejected",
            field_name=field,
            detection=detection,
        )
        return ValidationResult.failure(field, f"{label} {UNSAFE_CONTENT_MESSAGE}")


__all__ = ["ScanPolicy", "ThreatScanner", "UNSAFE_CONTENT_MESSAGE"]
