"""Validation pipeline composing rate limiting, rule checks and scanning."""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping, Sequence
from enum import Enum
from typing import Any

from quantforge_guard.config.settings import GuardSettings
from quantforge_guard.security.input_sanitizer import SanitizePolicy, sanitize
from quantforge_guard.security.patterns import DEFAULT_MAX_INPUT_LENGTH
from quantforge_guard.security.rate_limiter import FixedWindowRateLimiter
from quantforge_guard.security.threat_scanner import ScanPolicy, ThreatScanner
from quantforge_guard.utilities.logging_patterns import get_logger, log_operation
from quantforge_guard.utilities.time_provider import Clock
from quantforge_guard.validation.trading_validators import (
    check_chat_message,
    check_generated_code,
    validate_api_key,
    validate_backtest_settings,
    validate_robot_name,
    validate_strategy_params,
    validate_symbol,
)
from quantforge_guard.validation.types import ValidationResult

logger = get_logger(__name__, component="validation")


class InputKind(str, Enum):
    """Kinds of untrusted input the pipeline knows how to validate."""

    CHAT_MESSAGE = "chat"
    GENERATED_CODE = "code"
    STRATEGY_PARAMS = "strategy_params"
    BACKTEST_SETTINGS = "backtest_settings"
    API_KEY = "api_key"
    ROBOT_NAME = "robot_name"
    SYMBOL = "symbol"


# Requests per window for each kind
DEFAULT_RATE_LIMITS: Mapping[InputKind, int] = {
    InputKind.CHAT_MESSAGE: 10,
    InputKind.GENERATED_CODE: 20,
    InputKind.STRATEGY_PARAMS: 30,
    InputKind.BACKTEST_SETTINGS: 30,
    InputKind.API_KEY: 10,
    InputKind.ROBOT_NAME: 50,
    InputKind.SYMBOL: 50,
}

_SCAN_LABELS: Mapping[InputKind, str] = {
    InputKind.CHAT_MESSAGE: "Message",
    InputKind.GENERATED_CODE: "Code",
    InputKind.ROBOT_NAME: "Robot name",
    InputKind.SYMBOL: "Symbol",
}

_ROOT_FIELDS: Mapping[InputKind, str] = {
    InputKind.CHAT_MESSAGE: "message",
    InputKind.GENERATED_CODE: "code",
    InputKind.ROBOT_NAME: "name",
    InputKind.SYMBOL: "symbol",
    InputKind.API_KEY: "apiKey",
}

SANITIZED_WARNING = "Input was sanitized to remove potentially unsafe content"


def build_rate_limiters(
    settings: GuardSettings, clock: Clock | None = None
) -> dict[InputKind, FixedWindowRateLimiter]:
    """One limiter per kind; ``rate_limit_max_requests`` overrides every default."""
    return {
        kind: FixedWindowRateLimiter(
            settings.rate_limit_max_requests or default,
            settings.rate_limit_window_seconds,
            clock=clock,
            name=kind.value,
        )
        for kind, default in DEFAULT_RATE_LIMITS.items()
    }


def iter_string_leaves(value: Any, path: str) -> Iterator[tuple[str, str]]:
    """Yield ``(field_path, text)`` for every string nested in ``value``."""
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, Mapping):
        for key, item in value.items():
            child = f"{path}.{key}" if path else str(key)
            yield from iter_string_leaves(item, child)
    elif isinstance(value, Sequence) and not isinstance(value, bytes | bytearray):
        for index, item in enumerate(value):
            yield from iter_string_leaves(item, f"{path}[{index}]")


class ValidationOrchestrator:
    """
    Run one input through rate limiting, rule validation and scanning.

    Stages run in order and the first rejecting stage ends the pipeline:

    1. Rate limit, only when an identity is supplied.
    2. Domain rule validation; every failing field is reported.
    3. Threat scan of every raw string in the payload; a rejection replaces
       everything gathered so far with one generic error.
    4. Sanitization of chat messages and robot names. A value that changed
       adds a warning; a changed robot name is checked again. Generated code
       is never altered.
    """

    def __init__(
        self,
        limiters: Mapping[InputKind, FixedWindowRateLimiter] | None = None,
        *,
        scan_policies: Mapping[InputKind, ScanPolicy] | None = None,
        sanitize_policy: SanitizePolicy | None = None,
        max_message_length: int = DEFAULT_MAX_INPUT_LENGTH,
    ) -> None:
        self._limiters = dict(limiters or {})
        policies = {
            InputKind.CHAT_MESSAGE: ScanPolicy.for_chat(),
            InputKind.GENERATED_CODE: ScanPolicy.for_code(),
        }
        policies.update(scan_policies or {})
        self._scanners = {kind: ThreatScanner(policy) for kind, policy in policies.items()}
        self._default_scanner = ThreatScanner()
        self._sanitize_policy = sanitize_policy or SanitizePolicy(max_length=max_message_length)
        self._max_message_length = max_message_length

    @classmethod
    def from_settings(
        cls, settings: GuardSettings, clock: Clock | None = None
    ) -> ValidationOrchestrator:
        return cls(
            build_rate_limiters(settings, clock),
            max_message_length=settings.max_input_length,
        )

    @property
    def limiters(self) -> Mapping[InputKind, FixedWindowRateLimiter]:
        return dict(self._limiters)

    def scanner_for(self, kind: InputKind) -> ThreatScanner:
        return self._scanners.get(kind, self._default_scanner)

    def validate(
        self, kind: InputKind | str, payload: Any, identity: str | None = None
    ) -> ValidationResult:
        """
        Validate ``payload`` as an input of ``kind``.

        Args:
            kind: Input kind or its string value.
            payload: The untrusted value. Strategy params and backtest
                settings are mappings; API keys may be a string or a mapping
                with ``apiKey`` and optional ``provider``; other kinds are
                strings.
            identity: Caller key for rate limiting; omitted for internal calls.

        Returns:
            The combined ``ValidationResult``.
        """
        kind = InputKind(kind)
        with log_operation("validate_input", logger, kind=kind.value):
            if identity is not None:
                limited = self._check_rate_limit(kind, identity)
                if limited is not None:
                    return limited

            result = self._run_rules(kind, payload)
            if not result.is_valid:
                logger.info(
                    "Input failed validation",
                    operation="validate_input",
                    kind=kind.value,
                    error_count=len(result.errors),
                )
                return result

            scanned = self._scan(kind, payload)
            if not scanned.is_valid:
                return ValidationResult(errors=scanned.errors)
            result = result.merge(ValidationResult.ok(scanned.warnings))

            if kind in (InputKind.CHAT_MESSAGE, InputKind.ROBOT_NAME):
                cleaned = sanitize(payload, self._sanitize_policy)
                if cleaned != payload:
                    if kind is InputKind.ROBOT_NAME:
                        rechecked = validate_robot_name(cleaned)
                        if not rechecked.is_valid:
                            return rechecked
                    result = result.with_warning(SANITIZED_WARNING)
                return result.with_sanitized_value(cleaned)

            if result.sanitized_value is None:
                result = result.with_sanitized_value(payload)
            return result

    def _check_rate_limit(self, kind: InputKind, identity: str) -> ValidationResult | None:
        limiter = self._limiters.get(kind)
        if limiter is None:
            return None
        decision = limiter.check(identity)
        if decision.allowed:
            return None
        wait_seconds = max(1, math.ceil(decision.retry_after))
        return ValidationResult.failure(
            "rateLimit", f"Rate limit exceeded. Please wait {wait_seconds} seconds."
        )

    def _run_rules(self, kind: InputKind, payload: Any) -> ValidationResult:
        match kind:
            case InputKind.CHAT_MESSAGE:
                return check_chat_message(payload, self._max_message_length)
            case InputKind.GENERATED_CODE:
                return check_generated_code(payload)
            case InputKind.STRATEGY_PARAMS:
                return validate_strategy_params(payload)
            case InputKind.BACKTEST_SETTINGS:
                return validate_backtest_settings(payload)
            case InputKind.API_KEY:
                if isinstance(payload, Mapping):
                    return validate_api_key(payload.get("apiKey"), payload.get("provider"))
                return validate_api_key(payload)
            case InputKind.ROBOT_NAME:
                return validate_robot_name(payload)
            case InputKind.SYMBOL:
                return validate_symbol(payload)

    def _scan(self, kind: InputKind, payload: Any) -> ValidationResult:
        scanner = self.scanner_for(kind)
        label = _SCAN_LABELS.get(kind, "Input")
        warnings: list[str] = []
        root = "" if isinstance(payload, Mapping) else _ROOT_FIELDS.get(kind, "")
        for field_path, text in iter_string_leaves(payload, root):
            verdict = scanner.scan(text, field=field_path or kind.value, label=label)
            if not verdict.is_valid:
                return verdict
            for warning in verdict.warnings:
                if warning not in warnings:
                    warnings.append(warning)
        return ValidationResult.ok(warnings)


__all__ = [
    "DEFAULT_RATE_LIMITS",
    "InputKind",
    "SANITIZED_WARNING",
    "ValidationOrchestrator",
    "build_rate_limiters",
    "iter_string_leaves",
]
