"""Rule engine, domain validators and the validation pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quantforge_guard.validation.rules import validate_field, validate_record
from quantforge_guard.validation.types import ValidationError, ValidationResult, ValidationRule

if TYPE_CHECKING:  # pragma: no cover - import-time cycle guard
    from quantforge_guard.validation.orchestrator import InputKind, ValidationOrchestrator
    from quantforge_guard.validation.trading_validators import (
        validate_api_key,
        validate_backtest_settings,
        validate_chat_message,
        validate_generated_code,
        validate_robot_name,
        validate_strategy_params,
        validate_symbol,
    )

_ORCHESTRATOR_EXPORTS = {"InputKind", "ValidationOrchestrator"}
_VALIDATOR_EXPORTS = {
    "validate_api_key",
    "validate_backtest_settings",
    "validate_chat_message",
    "validate_generated_code",
    "validate_robot_name",
    "validate_strategy_params",
    "validate_symbol",
}

__all__ = [
    "InputKind",
    "ValidationError",
    "ValidationOrchestrator",
    "ValidationResult",
    "ValidationRule",
    "validate_api_key",
    "validate_backtest_settings",
    "validate_chat_message",
    "validate_field",
    "validate_generated_code",
    "validate_record",
    "validate_robot_name",
    "validate_strategy_params",
    "validate_symbol",
]


def __getattr__(name: str) -> Any:
    # The scanner depends on the result types defined here, so the modules
    # that depend on the scanner load on first access.
    if name in _ORCHESTRATOR_EXPORTS:
        from quantforge_guard.validation import orchestrator

        return getattr(orchestrator, name)
    if name in _VALIDATOR_EXPORTS:
        from quantforge_guard.validation import trading_validators

        return getattr(trading_validators, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
