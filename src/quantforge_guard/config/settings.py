"""Typed configuration backed by environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import ClassVar

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quantforge_guard.errors import ConfigurationError

_DEFAULT_ENV_FILES: tuple[Path, ...] = (
    Path(".env"),
    Path("config/environments/.env"),
)

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class GuardSettings(BaseSettings):
    """Runtime configuration for the validation and resilience layer."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    rate_limit_window_ms: int = Field(
        default=60_000, ge=1, description="Length of one fixed rate-limit window."
    )
    rate_limit_max_requests: int | None = Field(
        default=None,
        ge=1,
        description="Overrides every per-kind request budget when set.",
    )
    rate_limit_sweep_interval_ms: int | None = Field(
        default=None,
        ge=1,
        description="Background sweep period; defaults to the window length.",
    )
    max_history_size: int = Field(
        default=1000, ge=1, description="In-memory structured error history bound."
    )
    persisted_history_size: int = Field(
        default=100, ge=0, description="Cap on the persisted copy of the error history."
    )
    error_history_path: Path | None = Field(
        default=None, description="JSON file receiving the persisted error history."
    )
    circuit_breaker_failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures that open a breaker."
    )
    circuit_breaker_recovery_timeout_ms: int = Field(
        default=60_000, ge=0, description="Cooldown before an open breaker allows a trial."
    )
    retry_backoff_base_ms: int = Field(
        default=1000, ge=0, description="Default base delay for retry backoff."
    )
    max_input_length: int = Field(
        default=10_000, ge=1, description="Sanitizer truncation length and chat size limit."
    )
    log_level: str = Field(default="INFO", description="Root logging level.")
    log_json: bool = Field(default=False, description="Emit JSON log lines.")

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, value: object) -> str:
        level = str(value).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value!r}")
        return level

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.rate_limit_window_ms / 1000.0

    @property
    def rate_limit_sweep_interval_seconds(self) -> float:
        interval = self.rate_limit_sweep_interval_ms or self.rate_limit_window_ms
        return interval / 1000.0

    @property
    def circuit_breaker_recovery_timeout_seconds(self) -> float:
        return self.circuit_breaker_recovery_timeout_ms / 1000.0

    @property
    def retry_backoff_base_seconds(self) -> float:
        return self.retry_backoff_base_ms / 1000.0


def _existing_env_files() -> list[str]:
    return [str(path) for path in _DEFAULT_ENV_FILES if path.exists()]


@lru_cache
def get_settings(_env_files: tuple[str, ...] | None = None) -> GuardSettings:
    """
    Load settings once per process, respecting `.env` fallbacks.

    Raises:
        ConfigurationError: The environment or an env file holds an invalid value.
    """
    env_files = list(_env_files) if _env_files is not None else _existing_env_files()
    try:
        if env_files:
            return GuardSettings(_env_file=env_files)
        return GuardSettings()
    except ValidationError as exc:
        problems = [(".".join(map(str, error["loc"])), error["msg"]) for error in exc.errors()]
        raise ConfigurationError(
            "Invalid guard settings",
            config_key=problems[0][0] if problems else None,
            context={
                "env_files": env_files,
                "errors": [f"{key}: {message}" for key, message in problems],
            },
        ) from exc


__all__ = ["GuardSettings", "get_settings"]
