"""Model provider adapters, the adapter registry and fallback wrappers."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_ATTRIBUTE_MAP: dict[str, tuple[str, str]] = {
    "AdapterConfig": ("Entropy_decomp.adapters.base", "AdapterConfig"),
    "AdapterError": ("Entropy_decomp.adapters.errors", "AdapterError"),
    "AdapterFactory": ("Entropy_decomp.adapters.factory", "AdapterFactory"),
    "AdapterRegistry": ("Entropy_decomp.adapters.registry", "AdapterRegistry"),
    "CircuitBreaker": ("Entropy_decomp.adapters.resilience", "CircuitBreaker"),
    "CompletionRequest": ("Entropy_decomp.adapters.base", "CompletionRequest"),
    "CompletionResponse": ("Entropy_decomp.adapters.base", "CompletionResponse"),
    "FallbackAdapter": ("Entropy_decomp.adapters.fallback", "FallbackAdapter"),
    "ModelAdapter": ("Entropy_decomp.adapters.base", "ModelAdapter"),
    "ModelProvider": ("Entropy_decomp.adapters.base", "ModelProvider"),
    "ScriptedAdapter": ("Entropy_decomp.adapters.testing", "ScriptedAdapter"),
}

__all__ = sorted(_ATTRIBUTE_MAP)


def __getattr__(name: str) -> Any:
    try:
        module_name, attr_name = _ATTRIBUTE_MAP[name]
    except KeyError as exc:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'") from exc

    value = getattr(import_module(module_name), attr_name)
    globals()[name] = value
    return value
