"""Tests covering application settings loading and environment presets."""

import pytest

from Entropy_decomp.config.settings import (
    ENVIRONMENT_DEFAULTS,
    Environment,
    OrchestratorSettings,
    get_settings,
    load_settings,
)


def test_environment_enum_covers_supported_values() -> None:
    """`Environment` enum should expose the supported deployment tiers."""
    assert {env.value for env in Environment} == {"dev", "staging", "prod"}


def test_environment_defaults_provide_expected_overrides() -> None:
    assert ENVIRONMENT_DEFAULTS[Environment.DEV]["logging"]["json_output"] is False
    assert ENVIRONMENT_DEFAULTS[Environment.PROD]["orchestrator"]["timeout_ms"] == 180_000


def test_orchestrator_defaults() -> None:
    settings = OrchestratorSettings()

    assert settings.max_retries == 3
    assert settings.timeout_ms == 120_000
    assert settings.backoff_base_seconds == 2.0


def test_load_settings_applies_environment_preset(monkeypatch) -> None:
    monkeypatch.delenv("ENTROPY_ORCHESTRATOR__TIMEOUT_MS", raising=False)

    settings = load_settings("prod")

    assert settings.environment is Environment.PROD
    assert settings.orchestrator.timeout_ms == 180_000
    assert settings.logging.json_output is True


def test_explicit_environment_values_win(monkeypatch) -> None:
    monkeypatch.setenv("ENTROPY_ORCHESTRATOR__MAX_RETRIES", "5")
    monkeypatch.setenv("ENTROPY_PROVIDERS__OPENAI_API_KEY", "sk-env")

    settings = load_settings("prod")

    assert settings.orchestrator.max_retries == 5
    assert settings.orchestrator.timeout_ms == 180_000
    assert settings.providers.openai_api_key.get_secret_value() == "sk-env"


def test_invalid_environment_values_raise(monkeypatch) -> None:
    monkeypatch.setenv("ENTROPY_ORCHESTRATOR__MAX_RETRIES", "0")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_settings("dev")


def test_get_settings_is_cached(monkeypatch) -> None:
    monkeypatch.setenv("ENTROPY_ENV", "staging")

    first = get_settings()

    assert first is get_settings()
    assert first.environment is Environment.STAGING
