"""
Domain validators for trading-robot inputs.

Each validator is a fixed composition of field rules plus the cross-field
checks the rule engine cannot express (custom input names, symbol
blocklist, API key provider conventions). They return a
``ValidationResult`` and never raise for bad input.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from quantforge_guard.security.patterns import (
    API_KEY_LENGTH,
    API_KEY_PATTERNS,
    API_KEY_PLACEHOLDERS,
    BACKTEST_DAYS,
    BLOCKED_SYMBOLS,
    CUSTOM_INPUT_INT,
    CUSTOM_INPUT_TYPES,
    DEFAULT_MAX_INPUT_LENGTH,
    IDENTIFIER_PATTERN,
    INITIAL_DEPOSIT,
    LEVERAGE,
    MAGIC_NUMBER,
    MAX_CODE_LENGTH_BEFORE_WARNING,
    RISK_PERCENT,
    ROBOT_NAME_LENGTH,
    STOP_LOSS_PIPS,
    SYMBOL_PATTERN,
    TAKE_PROFIT_PIPS,
    TIMEFRAMES,
    Bounds,
)
from quantforge_guard.security.threat_scanner import ScanPolicy, ThreatScanner
from quantforge_guard.validation.rules import is_missing, validate_field, validate_record
from quantforge_guard.validation.types import ValidationError, ValidationResult, ValidationRule

_NUMBER = (int, float)


def _bounded(field: str, label: str, bounds: Bounds) -> ValidationRule:
    return ValidationRule(
        field=field,
        required=True,
        value_type=_NUMBER,
        minimum=bounds.minimum,
        maximum=bounds.maximum,
        label=label,
    )


STRATEGY_RULES: tuple[ValidationRule, ...] = (
    ValidationRule(
        field="timeframe",
        required=True,
        value_type=str,
        allowed_values=TIMEFRAMES,
        label="Timeframe",
    ),
    _bounded("riskPercent", "Risk percent", RISK_PERCENT),
    _bounded("stopLoss", "Stop loss", STOP_LOSS_PIPS),
    _bounded("takeProfit", "Take profit", TAKE_PROFIT_PIPS),
    _bounded("magicNumber", "Magic number", MAGIC_NUMBER),
)

BACKTEST_RULES: tuple[ValidationRule, ...] = (
    _bounded("initialDeposit", "Initial deposit", INITIAL_DEPOSIT),
    _bounded("days", "Duration", BACKTEST_DAYS),
    _bounded("leverage", "Leverage", LEVERAGE),
)

ROBOT_NAME_RULE = ValidationRule(
    field="name",
    required=True,
    value_type=str,
    min_length=int(ROBOT_NAME_LENGTH.minimum),
    max_length=int(ROBOT_NAME_LENGTH.maximum),
    label="Robot name",
)

CUSTOM_INPUT_NAME_RULE = ValidationRule(
    field="name",
    required=True,
    value_type=str,
    pattern=IDENTIFIER_PATTERN,
    label="Custom input name",
    pattern_message=(
        "Invalid name format. Use letters, numbers, and underscores only, "
        "starting with a letter or underscore"
    ),
)


def _as_mapping(payload: Any, field: str) -> tuple[Mapping[str, Any], ValidationError | None]:
    if isinstance(payload, Mapping):
        return payload, None
    return {}, ValidationError(field, "Payload must be an object")


# =============================================================================
# Symbols
# =============================================================================


def _symbol_error(symbol: Any, field: str) -> tuple[ValidationError | None, str | None]:
    if is_missing(symbol):
        return ValidationError(field, "Symbol is required"), None
    if not isinstance(symbol, str):
        return ValidationError(field, "Symbol must be a string"), None

    normalized = symbol.strip().upper()
    if SYMBOL_PATTERN.fullmatch(normalized) is None:
        return (
            ValidationError(
                field,
                "Invalid symbol format. Use formats like: EURUSD, EUR/USD, XAUUSD, BTCUSDT",
            ),
            normalized,
        )
    if normalized in BLOCKED_SYMBOLS:
        return ValidationError(field, "Invalid symbol for trading"), normalized
    return None, normalized


def validate_symbol(symbol: Any, field: str = "symbol") -> ValidationResult:
    """Validate a trading symbol; the normalized symbol is the sanitized value."""
    error, normalized = _symbol_error(symbol, field)
    if error is not None:
        return ValidationResult(errors=(error,))
    return ValidationResult.ok(sanitized_value=normalized)


# =============================================================================
# Strategy parameters
# =============================================================================


def _custom_value_error(input_type: Any, value: Any, field: str) -> ValidationError | None:
    if input_type == "int":
        parsed: float | None
        if isinstance(value, bool):
            parsed = None
        elif isinstance(value, int):
            parsed = value
        elif isinstance(value, float) and value.is_integer():
            parsed = int(value)
        elif isinstance(value, str):
            try:
                parsed = int(value.strip())
            except ValueError:
                parsed = None
        else:
            parsed = None
        if parsed is None or not CUSTOM_INPUT_INT.contains(parsed):
            return ValidationError(field, "Invalid integer value")
    elif input_type == "double":
        try:
            number = float(value) if not isinstance(value, bool) else math.nan
        except (TypeError, ValueError):
            number = math.nan
        if not math.isfinite(number):
            return ValidationError(field, "Invalid number value")
    elif input_type == "bool":
        if not isinstance(value, bool) and value not in ("true", "false"):
            return ValidationError(field, 'Boolean value must be "true" or "false"')
    return None


def _validate_custom_inputs(custom_inputs: Any) -> list[ValidationError]:
    if custom_inputs is None:
        return []
    if not isinstance(custom_inputs, Sequence) or isinstance(custom_inputs, str):
        return [ValidationError("customInputs", "Custom inputs must be a list")]

    errors: list[ValidationError] = []
    seen_names: set[str] = set()

    for index, item in enumerate(custom_inputs):
        prefix = f"customInputs[{index}]"
        if not isinstance(item, Mapping):
            errors.append(ValidationError(prefix, "Custom input must be an object"))
            continue

        name = item.get("name")
        name_error = validate_field(name, CUSTOM_INPUT_NAME_RULE)
        if name_error is not None:
            errors.append(ValidationError(f"{prefix}.name", name_error.message))
        elif name in seen_names:
            errors.append(ValidationError(f"{prefix}.name", f'Duplicate input name: "{name}"'))
        else:
            seen_names.add(name)

        input_type = item.get("type")
        if input_type is not None and input_type not in CUSTOM_INPUT_TYPES:
            options = ", ".join(sorted(CUSTOM_INPUT_TYPES))
            errors.append(
                ValidationError(f"{prefix}.type", f"Custom input type must be one of: {options}")
            )
            continue

        value_error = _custom_value_error(input_type, item.get("value"), f"{prefix}.value")
        if value_error is not None:
            errors.append(value_error)

    return errors


def validate_strategy_params(params: Mapping[str, Any]) -> ValidationResult:
    """
    Validate a strategy parameter object.

    Checks timeframe, symbol, risk percent, stop loss, take profit and
    magic number independently, then each custom input: name format,
    duplicate names (one error per repeated occurrence) and value typing.
    """
    record, shape_error = _as_mapping(params, "strategyParams")
    if shape_error is not None:
        return ValidationResult(errors=(shape_error,))

    result = validate_record(record, STRATEGY_RULES)
    errors = list(result.errors)

    symbol_error, _ = _symbol_error(record.get("symbol"), "symbol")
    if symbol_error is not None:
        errors.append(symbol_error)

    errors.extend(_validate_custom_inputs(record.get("customInputs")))
    return ValidationResult.from_lists(errors, result.warnings)


# =============================================================================
# Backtest settings
# =============================================================================


def validate_backtest_settings(settings: Mapping[str, Any]) -> ValidationResult:
    """Validate initial deposit, duration in days and leverage."""
    record, shape_error = _as_mapping(settings, "backtestSettings")
    if shape_error is not None:
        return ValidationResult(errors=(shape_error,))
    result = validate_record(record, BACKTEST_RULES)
    return ValidationResult.from_lists(result.errors, result.warnings)


# =============================================================================
# Robot names
# =============================================================================


def validate_robot_name(name: Any) -> ValidationResult:
    error = validate_field(name, ROBOT_NAME_RULE)
    if error is not None:
        return ValidationResult(errors=(error,))
    return ValidationResult.ok()


# =============================================================================
# API keys
# =============================================================================

_ANTHROPIC_PREFIX = "sk-ant-"
_OPENAI_PREFIX = "sk-"
_KNOWN_PROVIDERS = frozenset({"openai", "anthropic", "google", "gemini"})


def validate_api_key(api_key: Any, provider: Any = None) -> ValidationResult:
    """
    Validate an API key's length, format and placeholder content.

    When ``provider`` is given, provider conventions apply: OpenAI keys
    must start with ``sk-``; Anthropic keys without ``sk-ant-`` and unknown
    providers only warn. A provider that is not a string is a field error.
    """
    field = "apiKey"
    warnings: list[str] = []

    if is_missing(api_key):
        return ValidationResult.failure(field, "API key is required")
    if not isinstance(api_key, str):
        return ValidationResult.failure(field, "API key must be a string")

    key = api_key.strip()
    error: str | None = None
    if len(key) < API_KEY_LENGTH.minimum:
        error = "API key appears to be too short"
    elif len(key) > API_KEY_LENGTH.maximum:
        error = "API key is too long"
    elif not any(pattern.fullmatch(key) for pattern in API_KEY_PATTERNS):
        error = "Invalid API key format"
    elif any(placeholder in key.lower() for placeholder in API_KEY_PLACEHOLDERS):
        error = "Please use a valid API key, not a placeholder"

    errors: list[ValidationError] = []
    if provider is not None and not isinstance(provider, str):
        errors.append(ValidationError("provider", "Provider must be a string"))
    elif provider is not None:
        normalized_provider = provider.strip().lower()
        if normalized_provider not in _KNOWN_PROVIDERS:
            warnings.append(f"Unknown provider: {provider}")
        elif normalized_provider == "openai" and not key.startswith(_OPENAI_PREFIX):
            error = error or 'OpenAI API key must start with "sk-"'
        elif normalized_provider == "anthropic" and not key.startswith(_ANTHROPIC_PREFIX):
            warnings.append('Anthropic API key should typically start with "sk-ant-"')

    if error is not None:
        errors.insert(0, ValidationError(field, error))
    return ValidationResult.from_lists(errors, warnings)


# =============================================================================
# Chat messages and generated code
# =============================================================================


def check_chat_message(message: Any, max_length: int = DEFAULT_MAX_INPUT_LENGTH) -> ValidationResult:
    """Structural checks for a chat message; content scanning is separate."""
    if is_missing(message):
        return ValidationResult.failure("message", "Message cannot be empty")
    if not isinstance(message, str):
        return ValidationResult.failure("message", "Message must be a string")
    if len(message) > max_length:
        return ValidationResult.failure(
            "message", f"Message is too long (max {max_length:,} characters)"
        )
    return ValidationResult.ok()


def check_generated_code(code: Any) -> ValidationResult:
    """Structural checks for a generated code blob; content scanning is separate."""
    if is_missing(code):
        return ValidationResult.failure("code", "Code cannot be empty")
    if not isinstance(code, str):
        return ValidationResult.failure("code", "Code must be a string")
    if len(code) > MAX_CODE_LENGTH_BEFORE_WARNING:
        return ValidationResult.ok(
            ["Code is very large and may take longer to compile or exceed platform limits"]
        )
    return ValidationResult.ok()


def validate_chat_message(
    message: Any,
    max_length: int = DEFAULT_MAX_INPUT_LENGTH,
    scanner: ThreatScanner | None = None,
) -> ValidationResult:
    """Check and scan a chat message."""
    result = check_chat_message(message, max_length)
    if not result.is_valid:
        return result
    scanner = scanner or ThreatScanner(ScanPolicy.for_chat())
    verdict = scanner.scan(message, field="message", label="Message")
    if not verdict.is_valid:
        return verdict
    return result.merge(verdict)


def validate_generated_code(code: Any, scanner: ThreatScanner | None = None) -> ValidationResult:
    """Check and scan generated MQL5 source. The code itself is never altered."""
    result = check_generated_code(code)
    if not result.is_valid:
        return result
    scanner = scanner or ThreatScanner(ScanPolicy.for_code())
    verdict = scanner.scan(code, field="code", label="Code")
    if not verdict.is_valid:
        return verdict
    return result.merge(verdict)


__all__ = [
    "BACKTEST_RULES",
    "STRATEGY_RULES",
    "check_chat_message",
    "check_generated_code",
    "validate_api_key",
    "validate_backtest_settings",
    "validate_chat_message",
    "validate_generated_code",
    "validate_robot_name",
    "validate_strategy_params",
    "validate_symbol",
]
