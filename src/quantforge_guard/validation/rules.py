"""Generic field-level rule engine."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from quantforge_guard.security.input_sanitizer import SanitizePolicy, sanitize
from quantforge_guard.validation.types import ValidationError, ValidationResult, ValidationRule


def format_bound(value: float) -> str:
    """Render a bound without a trailing ``.0`` for integral values."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _type_name(value_type: type | tuple[type, ...]) -> str:
    types = value_type if isinstance(value_type, tuple) else (value_type,)
    names = {"str": "string", "int": "number", "float": "number", "bool": "boolean"}
    rendered = []
    for item in types:
        name = names.get(item.__name__, item.__name__)
        if name not in rendered:
            rendered.append(name)
    return " or ".join(rendered)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def validate_field(value: Any, rule: ValidationRule) -> ValidationError | None:
    """
    Evaluate ``rule`` against ``value`` and return the first violation.

    Precedence is fixed: required, type and length, numeric range,
    pattern, allowed values. A missing optional value passes.
    """
    name = rule.display_name

    if is_missing(value):
        if rule.required:
            return ValidationError(rule.field, f"{name} is required")
        return None

    if rule.value_type is not None:
        expected = rule.value_type
        numeric_expected = any(
            item in (int, float) for item in (expected if isinstance(expected, tuple) else (expected,))
        )
        if (numeric_expected and isinstance(value, bool)) or not isinstance(value, expected):
            return ValidationError(rule.field, f"{name} must be a {_type_name(expected)}")

    if isinstance(value, str | list | tuple):
        unit = "characters" if isinstance(value, str) else "items"
        if rule.min_length is not None and len(value) < rule.min_length:
            return ValidationError(
                rule.field, f"{name} must be at least {rule.min_length} {unit} long"
            )
        if rule.max_length is not None and len(value) > rule.max_length:
            return ValidationError(
                rule.field, f"{name} must not exceed {rule.max_length} {unit}"
            )

    if rule.minimum is not None or rule.maximum is not None:
        if not _is_number(value):
            return ValidationError(rule.field, f"{name} must be a number")
        if math.isnan(value):
            return ValidationError(rule.field, f"{name} must be a finite number")
        too_low = rule.minimum is not None and value < rule.minimum
        too_high = rule.maximum is not None and value > rule.maximum
        if too_low or too_high:
            return ValidationError(rule.field, _range_message(name, rule))

    if rule.pattern is not None:
        if not isinstance(value, str) or rule.pattern.fullmatch(value) is None:
            return ValidationError(
                rule.field, rule.pattern_message or f"{name} has an invalid format"
            )

    if rule.allowed_values is not None and value not in rule.allowed_values:
        options = ", ".join(str(option) for option in rule.allowed_values)
        return ValidationError(rule.field, f"{name} must be one of: {options}")

    return None


def _range_message(name: str, rule: ValidationRule) -> str:
    if rule.minimum is not None and rule.maximum is not None:
        return (
            f"{name} must be between {format_bound(rule.minimum)} "
            f"and {format_bound(rule.maximum)}"
        )
    if rule.minimum is not None:
        return f"{name} must be at least {format_bound(rule.minimum)}"
    return f"{name} must be at most {format_bound(rule.maximum)}"  # type: ignore[arg-type]


def validate_record(
    record: Mapping[str, Any],
    rules: Iterable[ValidationRule],
    policy: SanitizePolicy | None = None,
) -> ValidationResult:
    """
    Apply every rule to ``record`` and collect one error per failing field.

    Fields whose rule sets ``sanitize`` and which passed validation are
    run through the sanitizer; a value that changes adds a warning and the
    cleaned record is returned as ``sanitized_value``.
    """
    errors: list[ValidationError] = []
    warnings: list[str] = []
    cleaned: dict[str, Any] = dict(record)

    for rule in rules:
        value = record.get(rule.field)
        error = validate_field(value, rule)
        if error is not None:
            errors.append(error)
            continue
        if rule.sanitize and isinstance(value, str):
            sanitized = sanitize(value, policy)
            if sanitized != value:
                warnings.append(f"{rule.display_name} was sanitized")
                cleaned[rule.field] = sanitized

    return ValidationResult.from_lists(errors, warnings, sanitized_value=cleaned)


__all__ = ["format_bound", "is_missing", "validate_field", "validate_record"]
