"""Construct provider adapters from :class:`AdapterConfig` records."""

from __future__ import annotations

from collections.abc import Callable, Mapping

import httpx

from .anthropic import AnthropicAdapter
from .base import AdapterConfig, ModelAdapter, ModelProvider
from .google import GoogleAdapter
from .openai import OpenAIAdapter

AdapterBuilder = Callable[[AdapterConfig], ModelAdapter]

_DEFAULT_CLASSES: Mapping[ModelProvider, type[ModelAdapter]] = {
    ModelProvider.ANTHROPIC: AnthropicAdapter,
    ModelProvider.OPENAI: OpenAIAdapter,
    ModelProvider.GOOGLE: GoogleAdapter,
}


class AdapterFactory:
    """Maps providers to adapter builders.

    A shared ``httpx.AsyncClient`` may be supplied so every adapter reuses one
    connection pool; custom builders can be registered per provider.
    """

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._builders: dict[ModelProvider, AdapterBuilder] = {}

    def register(self, provider: ModelProvider | str, builder: AdapterBuilder) -> None:
        self._builders[ModelProvider(provider)] = builder

    def supports(self, provider: ModelProvider | str) -> bool:
        key = ModelProvider(provider)
        return key in self._builders or key in _DEFAULT_CLASSES

    def create(self, config: AdapterConfig) -> ModelAdapter:
        builder = self._builders.get(config.provider)
        if builder is not None:
            return builder(config)
        adapter_cls = _DEFAULT_CLASSES.get(config.provider)
        if adapter_cls is None:
            raise ValueError(f"Unsupported provider: {config.provider}")
        return adapter_cls(config, client=self._client)


__all__ = ["AdapterBuilder", "AdapterFactory"]
