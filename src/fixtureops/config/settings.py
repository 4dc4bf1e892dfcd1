"""Configuration settings and loading."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fixtureops.errors import ConfigValidationError, ErrorContext

ENV_PREFIX = "FIXTUREOPS_"

# Weaver defaults
DEFAULT_INGEST_PORT = 4317
DEFAULT_ADMIN_PORT = 4320
DEFAULT_INACTIVITY_TIMEOUT = 300
DEFAULT_WEAVER_VERSION = "0.19.0"

# Polling defaults
DEFAULT_POLL_INTERVAL = 0.25
DEFAULT_PROBE_TIMEOUT = 2.0


class FixtureOpsSettings(BaseSettings):
    """Configuration for fixtureops resources.

    Every field can be overridden with a ``FIXTUREOPS_<FIELD>`` environment
    variable, e.g. ``FIXTUREOPS_WEAVER_ADMIN_PORT=14320``.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Container runtime
    docker_binary: str = "docker"
    probe_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, description="Seconds an availability probe may take")
    poll_interval: float = DEFAULT_POLL_INTERVAL
    wait_timeout: float = 60.0
    exec_timeout: float = 60.0
    stop_grace_period: float = 10.0

    # Live-check process
    weaver_binary: str | None = Field(default=None, description="Explicit path to the weaver executable")
    weaver_ingest_port: int = DEFAULT_INGEST_PORT
    weaver_admin_port: int = DEFAULT_ADMIN_PORT
    weaver_inactivity_timeout: int = DEFAULT_INACTIVITY_TIMEOUT
    weaver_output_format: str = "json"
    weaver_output_dir: str = "./weaver-reports"
    weaver_download: bool = False
    weaver_version: str = DEFAULT_WEAVER_VERSION
    health_check_attempts: int = 10
    health_check_interval: float = DEFAULT_POLL_INTERVAL

    log_level: str = "INFO"

    @field_validator("weaver_ingest_port", "weaver_admin_port")
    @classmethod
    def validate_port(cls, v: int, info: ValidationInfo) -> int:
        if not 1 <= v <= 65535:
            raise ConfigValidationError(
                message=f"{info.field_name} must be between 1 and 65535, got {v}",
                field=info.field_name,
                value=v,
                context=ErrorContext(extra={"valid_range": [1, 65535]}),
            )
        return v

    @field_validator(
        "probe_timeout",
        "poll_interval",
        "wait_timeout",
        "exec_timeout",
        "stop_grace_period",
        "health_check_interval",
    )
    @classmethod
    def validate_positive(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            raise ConfigValidationError(
                message=f"{info.field_name} must be positive, got {v}",
                field=info.field_name,
                value=v,
            )
        return v

    @field_validator("health_check_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ConfigValidationError(
                message=f"health_check_attempts must be at least 1, got {v}",
                field="health_check_attempts",
                value=v,
            )
        return v

    @field_validator("weaver_output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        valid = {"json", "ansi"}
        if v not in valid:
            raise ConfigValidationError(
                message=f"Invalid weaver_output_format: {v!r}. Valid: {sorted(valid)}",
                field="weaver_output_format",
                value=v,
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ConfigValidationError(
                message=f"Invalid log_level: {v!r}. Valid: {sorted(valid)}",
                field="log_level",
                value=v,
            )
        return v.upper()


def load_settings(config_path: str | Path | None = None) -> FixtureOpsSettings:
    """Load settings from a YAML file and the environment.

    Priority: env vars > config file > defaults
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}

    for key in _get_env_overrides():
        config_data.pop(key, None)

    return FixtureOpsSettings(**config_data)


@lru_cache(maxsize=1)
def get_settings() -> FixtureOpsSettings:
    """Process-wide settings, read once from the environment."""
    return load_settings(os.environ.get(f"{ENV_PREFIX}CONFIG"))


def _get_env_overrides() -> set[str]:
    """Names of settings fields that are set through the environment."""
    overridden: set[str] = set()
    for name in FixtureOpsSettings.model_fields:
        if f"{ENV_PREFIX}{name.upper()}" in os.environ:
            overridden.add(name)
    return overridden
