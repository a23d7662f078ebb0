"""Registry of configured model adapters.

The registry owns adapter configuration, lazily builds adapter handles through
an :class:`AdapterFactory`, answers fallback-chain lookups, and probes adapter
health. One registry is created at process start and passed to agents and the
orchestrator explicitly; it is safe for concurrent readers on one event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from Entropy_decomp.config.model_config import (
    ConfigurationError,
    ModelConfiguration,
    validate_fallback_chains,
)

from .base import AdapterConfig, ModelAdapter
from .errors import UnknownAdapterError
from .factory import AdapterFactory

logger = structlog.get_logger(__name__)


class AdapterRegistry:
    """Resolve adapter handles by id."""

    def __init__(self, factory: AdapterFactory | None = None) -> None:
        self._factory = factory or AdapterFactory()
        self._configs: dict[str, AdapterConfig] = {}
        self._adapters: dict[str, ModelAdapter] = {}
        self._fallback_chains: dict[str, list[str]] = {}
        self._default_id: str | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def initialize(
        self,
        configs: Iterable[AdapterConfig],
        *,
        default_adapter_id: str | None = None,
        fallback_chains: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        """Replace the registered adapters and fallback chains.

        Raises:
            ConfigurationError: When the default adapter or a fallback id is
                not among ``configs``.
        """
        new_configs = {config.id: config for config in configs}
        chains = {key: list(value) for key, value in (fallback_chains or {}).items()}
        validate_fallback_chains(set(new_configs), chains)
        if default_adapter_id is not None and default_adapter_id not in new_configs:
            raise ConfigurationError(f"Default adapter not found: {default_adapter_id}")
        self._configs = new_configs
        self._fallback_chains = chains
        self._default_id = default_adapter_id
        self._adapters.clear()
        logger.info(
            "adapters.registry.initialized",
            adapters=sorted(new_configs),
            default_adapter_id=default_adapter_id,
        )

    def apply(self, configuration: ModelConfiguration) -> None:
        """Adopt a validated configuration snapshot; usable as a config listener."""
        self.initialize(
            configuration.adapters,
            default_adapter_id=configuration.default_adapter_id,
            fallback_chains=configuration.fallback_chains,
        )

    def register(self, adapter: ModelAdapter, *, fallbacks: Iterable[str] | None = None) -> None:
        """Register a pre-built adapter handle under its config id."""
        self._configs[adapter.id] = adapter.config
        self._adapters[adapter.id] = adapter
        if fallbacks is not None:
            self._fallback_chains[adapter.id] = list(fallbacks)
        if self._default_id is None:
            self._default_id = adapter.id

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get(self, adapter_id: str) -> ModelAdapter:
        adapter = self._adapters.get(adapter_id)
        if adapter is not None:
            return adapter
        config = self._configs.get(adapter_id)
        if config is None:
            raise UnknownAdapterError(adapter_id)
        adapter = self._factory.create(config)
        self._adapters[adapter_id] = adapter
        logger.debug("adapters.registry.created", adapter_id=adapter_id, provider=config.provider.value)
        return adapter

    def get_default(self) -> ModelAdapter:
        if self._default_id is None:
            raise UnknownAdapterError("<default>")
        return self.get(self._default_id)

    def get_config(self, adapter_id: str) -> AdapterConfig | None:
        return self._configs.get(adapter_id)

    def has(self, adapter_id: str) -> bool:
        return adapter_id in self._configs

    def get_fallback_chain(self, adapter_id: str) -> list[str]:
        return list(self._fallback_chains.get(adapter_id, []))

    @property
    def default_adapter_id(self) -> str | None:
        return self._default_id

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def update_config(self, adapter_id: str, changes: Mapping[str, Any]) -> AdapterConfig:
        current = self._configs.get(adapter_id)
        if current is None:
            raise UnknownAdapterError(adapter_id)
        updated = AdapterConfig.model_validate({**current.model_dump(), **dict(changes), "id": adapter_id})
        self._configs[adapter_id] = updated
        self._adapters.pop(adapter_id, None)
        logger.info("adapters.registry.config_updated", adapter_id=adapter_id, fields=sorted(changes))
        return updated

    def reload(self) -> None:
        """Drop cached handles so the next lookup rebuilds them."""
        self._adapters.clear()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------
    async def _probe(self, adapter_id: str) -> bool:
        try:
            return bool(await self.get(adapter_id).health_check())
        except Exception as exc:
            logger.warning("adapters.registry.health_failed", adapter_id=adapter_id, error=str(exc))
            return False

    async def health_check(self) -> dict[str, bool]:
        adapter_ids = sorted(self._configs)
        results = await asyncio.gather(*(self._probe(adapter_id) for adapter_id in adapter_ids))
        return dict(zip(adapter_ids, results))

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
        self._adapters.clear()

    def list(self) -> list[AdapterConfig]:
        return [*self._configs.values()]


__all__ = ["AdapterRegistry"]
