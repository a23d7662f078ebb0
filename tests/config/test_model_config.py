import asyncio

import pytest
from pydantic import SecretStr

from Entropy_decomp.agents.models import AgentType
from Entropy_decomp.config.model_config import (
    DEFAULT_LAYER,
    ConfigSource,
    ConfigurationError,
    ModelConfigManager,
    build_configuration,
    environment_layer,
    load_yaml_layer,
    merge_layers,
)
from Entropy_decomp.config.settings import ProviderSettings


def test_higher_layers_win_and_adapters_merge_by_id() -> None:
    merged = merge_layers(
        {
            ConfigSource.ENVIRONMENT: {"adapters": [{"id": "a", "timeout_ms": 5_000}]},
            ConfigSource.DEFAULTS: {
                "adapters": [{"id": "a", "provider": "openai", "model": "gpt-4o", "timeout_ms": 60_000}],
                "default_adapter_id": "a",
                "fallback_chains": {"a": ["b"]},
            },
            ConfigSource.REMOTE: {"default_adapter_id": "a", "fallback_chains": {"a": []}},
        }
    )

    assert merged["adapters"] == [{"id": "a", "provider": "openai", "model": "gpt-4o", "timeout_ms": 5_000}]
    assert merged["fallback_chains"] == {"a": []}


def test_merge_does_not_mutate_layers() -> None:
    defaults = {"adapters": [{"id": "a", "provider": "openai", "model": "gpt-4o"}]}
    merge_layers({ConfigSource.DEFAULTS: defaults, ConfigSource.DATABASE: {"adapters": [{"id": "a", "model": "x"}]}})

    assert defaults["adapters"][0]["model"] == "gpt-4o"


def test_default_layer_builds() -> None:
    config = build_configuration({ConfigSource.DEFAULTS: DEFAULT_LAYER})

    assert config.default_adapter_id == "anthropic-claude-4-sonnet"
    assert config.adapter("openai-gpt-4o").model == "gpt-4o"
    assert config.adapter("missing") is None


def test_invalid_fallback_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid fallback adapter"):
        build_configuration(
            {
                ConfigSource.DEFAULTS: DEFAULT_LAYER,
                ConfigSource.DATABASE: {"fallback_chains": {"openai-gpt-4o": ["mistral-large"]}},
            }
        )


def test_schema_violations_become_configuration_errors() -> None:
    with pytest.raises(ConfigurationError, match="Invalid model configuration"):
        build_configuration({ConfigSource.DEFAULTS: {"adapters": [{"id": "a"}], "default_adapter_id": "a"}})


def test_failed_update_keeps_previous_snapshot() -> None:
    manager = ModelConfigManager()
    published = []
    manager.subscribe(published.append)
    before = manager.config

    with pytest.raises(ConfigurationError):
        manager.set_layer(ConfigSource.REMOTE, {"default_adapter_id": "unknown"})

    assert manager.config is before
    assert published == []


def test_agent_overrides_and_listener_notification() -> None:
    manager = ModelConfigManager()
    published = []
    unsubscribe = manager.subscribe(published.append)

    manager.set_layer(
        ConfigSource.DATABASE,
        {"agent_configs": {"classifier": {"id": "classifier-agent", "type": "classifier", "max_retries": 5}}},
    )
    unsubscribe()
    manager.reload()

    assert len(published) == 1
    assert manager.get_agent_config(AgentType.CLASSIFIER).max_retries == 5
    assert manager.get_agent_config(AgentType.DECOMPOSER) is None


def test_failing_listener_does_not_block_others() -> None:
    manager = ModelConfigManager()
    received = []

    def broken(config):
        raise RuntimeError("listener crashed")

    manager.subscribe(broken)
    manager.subscribe(received.append)

    manager.reload()

    assert len(received) == 1


def test_environment_layer_injects_credentials() -> None:
    providers = ProviderSettings(anthropic_api_key=SecretStr("sk-ant"), openai_base_url="https://proxy/v1")

    layer = environment_layer(list(DEFAULT_LAYER["adapters"]), providers)
    entries = {entry["id"]: entry for entry in layer["adapters"]}

    assert entries["anthropic-claude-4-sonnet"]["api_key"] == "sk-ant"
    assert entries["openai-gpt-4o"]["base_url"] == "https://proxy/v1"
    assert "api_key" not in entries["openai-gpt-4o"]


def test_manager_applies_provider_credentials() -> None:
    manager = ModelConfigManager(providers=ProviderSettings(google_api_key=SecretStr("g-key")))

    config = manager.get_adapter_config("google-gemini-pro")

    assert config.api_key.get_secret_value() == "g-key"


def test_yaml_layer(tmp_path) -> None:
    path = tmp_path / "models.yaml"
    path.write_text("default_adapter_id: openai-gpt-4o\nfallback_chains:\n  openai-gpt-4o: []\n", encoding="utf-8")

    assert load_yaml_layer(path) == {"default_adapter_id": "openai-gpt-4o", "fallback_chains": {"openai-gpt-4o": []}}
    assert load_yaml_layer(tmp_path / "missing.yaml") == {}


def test_yaml_layer_must_be_a_mapping(tmp_path) -> None:
    path = tmp_path / "models.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_yaml_layer(path)


@pytest.mark.asyncio
async def test_refresh_applies_loader_output() -> None:
    manager = ModelConfigManager()

    async def loader():
        return {"default_adapter_id": "openai-gpt-4o"}

    async def unchanged():
        return None

    assert await manager.refresh(loader) is True
    assert manager.config.default_adapter_id == "openai-gpt-4o"
    assert await manager.refresh(unchanged) is False


@pytest.mark.asyncio
async def test_polling_refreshes_until_stopped() -> None:
    manager = ModelConfigManager()
    calls = []

    async def loader():
        calls.append(1)
        return {"default_adapter_id": "google-gemini-pro"}

    manager.start_polling(loader, interval_seconds=0.01)
    for _ in range(100):
        if calls:
            break
        await asyncio.sleep(0.01)
    await manager.stop_polling()

    assert calls
    assert manager.config.default_adapter_id == "google-gemini-pro"
