"""Entropy requirements decomposition engine.

Key Responsibilities:
    - Drive an uploaded requirement through extraction, classification,
      decomposition, scoring and storage stages
    - Execute schema-validated LLM agents with provider fallback
    - Expose configuration, logging and metrics helpers for host services

Collaborators:
    - Upstream: Worker processes construct a :class:`DecompositionOrchestrator`
      and call :meth:`execute` per queued requirement
    - Downstream: Provider HTTP APIs, repositories and object storage supplied
      by the host
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_ATTRIBUTE_MAP: dict[str, tuple[str, str]] = {
    "AdapterRegistry": ("Entropy_decomp.adapters.registry", "AdapterRegistry"),
    "CancellationToken": ("Entropy_decomp.orchestration.errors", "CancellationToken"),
    "DecompositionOrchestrator": ("Entropy_decomp.orchestration.orchestrator", "DecompositionOrchestrator"),
    "ModelConfigManager": ("Entropy_decomp.config.model_config", "ModelConfigManager"),
    "configure_logging": ("Entropy_decomp.utils.logging", "configure_logging"),
    "get_settings": ("Entropy_decomp.config.settings", "get_settings"),
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
