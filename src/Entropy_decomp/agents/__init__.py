"""Schema-validated LLM agents and their shared execution core."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_ATTRIBUTE_MAP: dict[str, tuple[str, str]] = {
    "AgentBehavior": ("Entropy_decomp.agents.executor", "AgentBehavior"),
    "AgentConfig": ("Entropy_decomp.agents.models", "AgentConfig"),
    "AgentExecutor": ("Entropy_decomp.agents.executor", "AgentExecutor"),
    "AgentHooks": ("Entropy_decomp.agents.executor", "AgentHooks"),
    "AgentInput": ("Entropy_decomp.agents.models", "AgentInput"),
    "AgentOutput": ("Entropy_decomp.agents.models", "AgentOutput"),
    "AgentType": ("Entropy_decomp.agents.models", "AgentType"),
    "ClassifierAgent": ("Entropy_decomp.agents.classifier", "ClassifierAgent"),
    "DecomposerAgent": ("Entropy_decomp.agents.decomposer", "DecomposerAgent"),
    "InMemoryExecutionLogger": ("Entropy_decomp.agents.execution_logger", "InMemoryExecutionLogger"),
    "NoOpExecutionLogger": ("Entropy_decomp.agents.execution_logger", "NoOpExecutionLogger"),
    "OutputValidator": ("Entropy_decomp.agents.validator", "OutputValidator"),
    "PromptEngine": ("Entropy_decomp.agents.prompts", "PromptEngine"),
    "QualityScorer": ("Entropy_decomp.agents.quality", "QualityScorer"),
    "RepositoryExecutionLogger": ("Entropy_decomp.agents.execution_logger", "RepositoryExecutionLogger"),
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
