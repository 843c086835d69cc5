"""Value types shared by the rule engine, scanner and orchestrator."""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """One violated constraint on one field."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    """
    Verdict of a validation or scan.

    ``is_valid`` is derived from ``errors`` and cannot disagree with it.
    Warnings are advisory and never affect validity.
    """

    errors: tuple[ValidationError, ...] = ()
    warnings: tuple[str, ...] = ()
    sanitized_value: Any = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @classmethod
    def ok(cls, warnings: Iterable[str] = (), sanitized_value: Any = None) -> ValidationResult:
        return cls(errors=(), warnings=tuple(warnings), sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, field_name: str, message: str) -> ValidationResult:
        return cls(errors=(ValidationError(field_name, message),))

    @classmethod
    def from_lists(
        cls,
        errors: Iterable[ValidationError],
        warnings: Iterable[str] = (),
        sanitized_value: Any = None,
    ) -> ValidationResult:
        return cls(
            errors=tuple(errors), warnings=tuple(warnings), sanitized_value=sanitized_value
        )

    def merge(self, other: ValidationResult) -> ValidationResult:
        """Combine two verdicts, keeping this result's sanitized value if set."""
        return ValidationResult(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
            sanitized_value=(
                self.sanitized_value if self.sanitized_value is not None else other.sanitized_value
            ),
        )

    def with_warning(self, warning: str) -> ValidationResult:
        return replace(self, warnings=self.warnings + (warning,))

    def with_sanitized_value(self, value: Any) -> ValidationResult:
        return replace(self, sanitized_value=value)

    def errors_for(self, field_name: str) -> list[ValidationError]:
        return [error for error in self.errors if error.field == field_name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [error.to_dict() for error in self.errors],
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ValidationRule:
    """
    Declarative constraint on one field of a record.

    Checks run in a fixed order: required, type and length, numeric
    range, pattern, allowed values. The first violation wins.
    """

    field: str
    required: bool = False
    value_type: type | tuple[type, ...] | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    pattern: re.Pattern[str] | None = None
    allowed_values: Collection[Any] | None = None
    sanitize: bool = False
    label: str | None = None
    pattern_message: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.field


__all__ = ["ValidationError", "ValidationResult", "ValidationRule"]
