"""Decomposition pipeline orchestration primitives."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_ATTRIBUTE_MAP: dict[str, tuple[str, str]] = {
    "CancellationToken": ("Entropy_decomp.orchestration.errors", "CancellationToken"),
    "DecompositionOrchestrator": ("Entropy_decomp.orchestration.orchestrator", "DecompositionOrchestrator"),
    "PipelineCancelled": ("Entropy_decomp.orchestration.errors", "PipelineCancelled"),
    "PipelineDataError": ("Entropy_decomp.orchestration.errors", "PipelineDataError"),
    "PipelineError": ("Entropy_decomp.orchestration.state", "PipelineError"),
    "PipelineState": ("Entropy_decomp.orchestration.state", "PipelineState"),
    "Stage": ("Entropy_decomp.orchestration.state", "Stage"),
    "StageTimeoutError": ("Entropy_decomp.orchestration.errors", "StageTimeoutError"),
}

__all__ = sorted(_ATTRIBUTE_MAP)


def __getattr__(name: str) -> Any:
    try:
        module_name, attr_name = _ATTRIBUTE_MAP[name]
    except KeyError as exc:  # pragma: no cover - standard attribute error path
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'") from exc

    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:  # pragma: no cover - convenience helper
    return sorted(globals().keys() | _ATTRIBUTE_MAP.keys())
