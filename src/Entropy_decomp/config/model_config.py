"""Layered, hot-reloadable model configuration.

Key Responsibilities:
    - Describe the adapter catalogue, default adapter, agent overrides and
      fallback chains as a validated :class:`ModelConfiguration`
    - Merge partial configuration layers in priority order
      ``DEFAULTS < REMOTE < DATABASE < ENVIRONMENT`` with a pure function
    - Re-apply layers on an explicit trigger or a polling task and notify
      listeners only once the merged snapshot validated

Collaborators:
    - Upstream: Worker bootstrap creates one :class:`ModelConfigManager` and
      subscribes the adapter registry to it
    - Downstream: :mod:`pydantic` for validation, :mod:`yaml` for file layers

Side Effects:
    - Polling runs an ``asyncio`` task until :meth:`ModelConfigManager.stop_polling`

Thread Safety:
    - Snapshots are immutable once published; updates swap the reference
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable, Mapping
from enum import IntEnum
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from Entropy_decomp.adapters.base import AdapterConfig, ModelProvider
from Entropy_decomp.agents.models import AgentConfig, AgentType
from Entropy_decomp.config.settings import ProviderSettings
from Entropy_decomp.utils.errors import FoundationError

logger = structlog.get_logger(__name__)

ConfigListener = Callable[["ModelConfiguration"], None]
LayerLoader = Callable[[], Awaitable[Mapping[str, Any] | None]]


class ConfigurationError(FoundationError):
    code = "CONFIGURATION_ERROR"


class ConfigSource(IntEnum):
    """Configuration layers, lowest priority first."""

    DEFAULTS = 0
    REMOTE = 1
    DATABASE = 2
    ENVIRONMENT = 3


class ModelConfiguration(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    adapters: list[AdapterConfig]
    default_adapter_id: str
    agent_configs: dict[AgentType, AgentConfig] = Field(default_factory=dict)
    fallback_chains: dict[str, list[str]] = Field(default_factory=dict)

    def adapter(self, adapter_id: str) -> AdapterConfig | None:
        return next((item for item in self.adapters if item.id == adapter_id), None)


DEFAULT_LAYER: Mapping[str, Any] = {
    "adapters": [
        {
            "id": "anthropic-claude-4-sonnet",
            "provider": "anthropic",
            "model": "claude-sonnet-4-5-20250929",
            "max_retries": 3,
            "timeout_ms": 60_000,
        },
        {
            "id": "anthropic-claude-4-opus",
            "provider": "anthropic",
            "model": "claude-opus-4-5-20251101",
            "max_retries": 3,
            "timeout_ms": 120_000,
        },
        {
            "id": "openai-gpt-4o",
            "provider": "openai",
            "model": "gpt-4o",
            "max_retries": 3,
            "timeout_ms": 60_000,
        },
        {
            "id": "google-gemini-pro",
            "provider": "google",
            "model": "gemini-1.5-pro",
            "max_retries": 3,
            "timeout_ms": 60_000,
        },
    ],
    "default_adapter_id": "anthropic-claude-4-sonnet",
    "agent_configs": {},
    "fallback_chains": {
        "anthropic-claude-4-sonnet": ["openai-gpt-4o", "google-gemini-pro"],
        "anthropic-claude-4-opus": ["anthropic-claude-4-sonnet", "openai-gpt-4o"],
        "openai-gpt-4o": ["anthropic-claude-4-sonnet", "google-gemini-pro"],
        "google-gemini-pro": ["anthropic-claude-4-sonnet", "openai-gpt-4o"],
    },
}


# ==============================================================================
# PURE HELPERS
# ==============================================================================


def _deep_merge(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _merge_adapters(base: list[Mapping[str, Any]], updates: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    by_id: dict[str, dict[str, Any]] = {item["id"]: dict(item) for item in base}
    for item in updates:
        by_id[item["id"]] = _deep_merge(by_id.get(item["id"], {}), item)
    return list(by_id.values())


def merge_layers(layers: Mapping[ConfigSource, Mapping[str, Any]]) -> dict[str, Any]:
    """Merge partial layers in ascending :class:`ConfigSource` priority.

    Adapters merge by ``id``; agent configs deep merge by agent type; fallback
    chains are replaced per adapter id; scalars from higher layers win.
    """
    merged: dict[str, Any] = {"adapters": [], "agent_configs": {}, "fallback_chains": {}}
    for source in sorted(layers):
        layer = layers[source]
        for key, value in layer.items():
            if key == "adapters":
                merged["adapters"] = _merge_adapters(merged["adapters"], list(value))
            elif key == "agent_configs":
                merged["agent_configs"] = _deep_merge(merged["agent_configs"], value)
            elif key == "fallback_chains":
                merged["fallback_chains"] = {**merged["fallback_chains"], **copy.deepcopy(dict(value))}
            else:
                merged[key] = copy.deepcopy(value)
    return merged


def validate_fallback_chains(adapter_ids: set[str], chains: Mapping[str, list[str]]) -> None:
    for adapter_id, chain in chains.items():
        for fallback_id in chain:
            if fallback_id not in adapter_ids:
                raise ConfigurationError(
                    f"Invalid fallback adapter: {fallback_id} in chain for {adapter_id}"
                )


def validate_configuration(config: ModelConfiguration) -> None:
    adapter_ids = {item.id for item in config.adapters}
    if config.default_adapter_id not in adapter_ids:
        raise ConfigurationError(f"Default adapter not found: {config.default_adapter_id}")
    validate_fallback_chains(adapter_ids, config.fallback_chains)


def build_configuration(layers: Mapping[ConfigSource, Mapping[str, Any]]) -> ModelConfiguration:
    """Merge and validate ``layers`` into a snapshot, raising on any problem."""
    try:
        config = ModelConfiguration.model_validate(merge_layers(layers))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid model configuration: {exc}") from exc
    validate_configuration(config)
    return config


def environment_layer(
    adapters: list[Mapping[str, Any]], providers: ProviderSettings
) -> dict[str, Any]:
    """Derive the environment layer injecting provider credentials."""
    credentials = {
        ModelProvider.ANTHROPIC.value: (providers.anthropic_api_key, providers.anthropic_base_url),
        ModelProvider.OPENAI.value: (providers.openai_api_key, providers.openai_base_url),
        ModelProvider.GOOGLE.value: (providers.google_api_key, providers.google_base_url),
    }
    entries: list[dict[str, Any]] = []
    for adapter in adapters:
        provider = ModelProvider(adapter["provider"]).value
        api_key, base_url = credentials[provider]
        entry: dict[str, Any] = {"id": adapter["id"]}
        if api_key is not None:
            entry["api_key"] = api_key.get_secret_value()
        if base_url and not adapter.get("base_url"):
            entry["base_url"] = base_url
        if len(entry) > 1:
            entries.append(entry)
    return {"adapters": entries} if entries else {}


def load_yaml_layer(path: str | Path) -> dict[str, Any]:
    """Read a configuration layer from a YAML document."""
    target = Path(path)
    if not target.exists():
        return {}
    payload = yaml.safe_load(target.read_text(encoding="utf-8")) or {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Configuration file {target} must contain a mapping")
    return payload


# ==============================================================================
# MANAGER
# ==============================================================================


class ModelConfigManager:
    """Holds the current :class:`ModelConfiguration` and its source layers."""

    def __init__(
        self,
        *,
        defaults: Mapping[str, Any] | None = None,
        providers: ProviderSettings | None = None,
    ) -> None:
        self._layers: dict[ConfigSource, dict[str, Any]] = {
            ConfigSource.DEFAULTS: copy.deepcopy(dict(defaults or DEFAULT_LAYER))
        }
        self._providers = providers
        self._listeners: list[ConfigListener] = []
        self._poll_task: asyncio.Task[None] | None = None
        self._config = self._build(self._layers)

    @property
    def config(self) -> ModelConfiguration:
        return self._config

    def get_adapter_config(self, adapter_id: str) -> AdapterConfig | None:
        return self._config.adapter(adapter_id)

    def get_agent_config(self, agent_type: AgentType) -> AgentConfig | None:
        return self._config.agent_configs.get(agent_type)

    def get_fallback_chain(self, adapter_id: str) -> list[str]:
        return list(self._config.fallback_chains.get(adapter_id, []))

    def _build(self, layers: Mapping[ConfigSource, Mapping[str, Any]]) -> ModelConfiguration:
        effective = dict(layers)
        if self._providers is not None:
            base = merge_layers({k: v for k, v in layers.items() if k is not ConfigSource.ENVIRONMENT})
            env = environment_layer(base["adapters"], self._providers)
            effective[ConfigSource.ENVIRONMENT] = merge_layers(
                {ConfigSource.DEFAULTS: env, ConfigSource.ENVIRONMENT: layers.get(ConfigSource.ENVIRONMENT, {})}
            )
        return build_configuration(effective)

    def set_layer(self, source: ConfigSource, changes: Mapping[str, Any]) -> ModelConfiguration:
        """Replace one layer and publish the re-merged snapshot.

        Raises:
            ConfigurationError: When the merged result is invalid; the current
                snapshot and layers are left untouched.
        """
        candidate = {**self._layers, source: copy.deepcopy(dict(changes))}
        config = self._build(candidate)
        self._layers = candidate
        self._publish(config, source)
        return config

    def reload(self) -> ModelConfiguration:
        config = self._build(self._layers)
        self._publish(config, None)
        return config

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, config: ModelConfiguration, source: ConfigSource | None) -> None:
        self._config = config
        logger.info(
            "model_config.updated",
            source=source.name if source is not None else "reload",
            adapters=len(config.adapters),
            default_adapter_id=config.default_adapter_id,
        )
        for listener in list(self._listeners):
            try:
                listener(config)
            except Exception as exc:
                logger.error("model_config.listener.failed", error=str(exc))

    async def refresh(self, loader: LayerLoader, source: ConfigSource = ConfigSource.REMOTE) -> bool:
        """Pull one layer from ``loader``; returns whether a new snapshot was published."""
        changes = await loader()
        if changes is None:
            return False
        self.set_layer(source, changes)
        return True

    def start_polling(
        self,
        loader: LayerLoader,
        *,
        interval_seconds: float = 30.0,
        source: ConfigSource = ConfigSource.REMOTE,
    ) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return

        async def _poll() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await self.refresh(loader, source)
                except Exception as exc:
                    logger.warning("model_config.poll.failed", source=source.name, error=str(exc))

        self._poll_task = asyncio.get_running_loop().create_task(_poll())
        logger.info("model_config.poll.started", interval_seconds=interval_seconds)

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("model_config.poll.stopped")


__all__ = [
    "ConfigSource",
    "ConfigurationError",
    "DEFAULT_LAYER",
    "ModelConfigManager",
    "ModelConfiguration",
    "build_configuration",
    "environment_layer",
    "load_yaml_layer",
    "merge_layers",
    "validate_configuration",
    "validate_fallback_chains",
]
