"""Application settings for the decomposition engine.

Settings are read from environment variables prefixed with ``ENTROPY_`` using
``__`` as the nested delimiter, e.g. ``ENTROPY_ORCHESTRATOR__MAX_RETRIES=5`` or
``ENTROPY_PROVIDERS__ANTHROPIC_API_KEY=...``.  Environment specific defaults are
deep merged underneath the values parsed from the environment by
:func:`load_settings`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environments recognised by :func:`load_settings`."""

    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    level: str = Field(default="INFO", description="Log level for application output")
    json_output: bool = Field(default=True, description="Render structlog events as JSON")
    scrub_fields: Sequence[str] = Field(
        default_factory=lambda: ["api_key", "apikey", "authorization", "password", "secret", "token"],
        description="Fields that should be redacted in logs",
    )


class OrchestratorSettings(BaseModel):
    """Stage retry, timeout and storage defaults for pipeline runs."""

    max_retries: int = Field(default=3, ge=1, le=10)
    timeout_ms: int = Field(default=120_000, ge=1)
    backoff_base_seconds: float = Field(
        default=2.0, ge=1.0, description="Base of the exponential backoff between stage attempts"
    )
    default_client_id: str = Field(default="00000000-0000-0000-0000-000000000001")


class ProviderSettings(BaseModel):
    """Credentials and endpoints for model providers."""

    anthropic_api_key: SecretStr | None = None
    anthropic_base_url: str = "https://api.anthropic.com"
    openai_api_key: SecretStr | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    google_api_key: SecretStr | None = None
    google_base_url: str = "https://generativelanguage.googleapis.com/v1beta"


class ModelCatalogSettings(BaseModel):
    """Sources consulted by the layered model configuration manager."""

    config_path: str | None = Field(
        default=None, description="Optional YAML file applied as the remote configuration layer"
    )
    poll_interval_seconds: float = Field(default=30.0, gt=0)


class AppSettings(BaseSettings):
    """Top-level application settings."""

    environment: Environment = Environment.DEV
    debug: bool = False
    service_name: str = "entropy-decomposition"
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    catalog: ModelCatalogSettings = Field(default_factory=ModelCatalogSettings)

    model_config = SettingsConfigDict(env_prefix="ENTROPY_", env_nested_delimiter="__")


ENVIRONMENT_DEFAULTS: Mapping[Environment, dict[str, Any]] = {
    Environment.DEV: {
        "debug": True,
        "logging": {"level": "DEBUG", "json_output": False},
    },
    Environment.STAGING: {
        "logging": {"level": "INFO"},
    },
    Environment.PROD: {
        "logging": {"level": "INFO"},
        "orchestrator": {"timeout_ms": 180_000},
    },
}


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            target[key] = _deep_update(dict(current), value)
        else:
            target[key] = value
    return target


def load_settings(environment: str | None = None) -> AppSettings:
    """Load application settings with environment specific defaults applied.

    Values explicitly set through the environment win over the per-environment
    defaults.
    """
    env_value = (environment or os.getenv("ENTROPY_ENV", "dev")).lower()
    env = Environment(env_value)
    try:
        explicit = AppSettings()
    except ValidationError as err:
        raise RuntimeError(f"Invalid configuration: {err}") from err
    merged = _deep_update(
        AppSettings.model_construct().model_dump(),
        ENVIRONMENT_DEFAULTS.get(env, {}),
    )
    merged = _deep_update(merged, explicit.model_dump(exclude_unset=True))
    merged["environment"] = env
    return AppSettings.model_validate(merged)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Cached accessor used by production code."""
    return load_settings()


__all__ = [
    "AppSettings",
    "Environment",
    "LoggingSettings",
    "ModelCatalogSettings",
    "OrchestratorSettings",
    "ProviderSettings",
    "get_settings",
    "load_settings",
]
