"""Value objects describing agent configuration, invocations and results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from Entropy_decomp.adapters.base import TokenUsage
from Entropy_decomp.utils.time import utc_now


class AgentType(str, Enum):
    CLASSIFIER = "classifier"
    DECOMPOSER = "decomposer"


class AgentConfig(BaseModel):
    """Static per-agent settings.

    ``fallback_adapter_ids`` of ``None`` defers to the adapter registry's
    fallback chain for ``adapter_id``; an empty list disables fallback.
    """

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    id: str
    type: AgentType
    adapter_id: str = "anthropic-claude-4-sonnet"
    fallback_adapter_ids: list[str] | None = None
    max_retries: int = Field(default=3, ge=1)
    timeout_ms: int = Field(default=60_000, ge=1)
    prompt_template_key: str = ""
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, ge=1)
    output_schema: dict[str, Any] | None = None


@dataclass(slots=True)
class AgentContext:
    """Caller supplied identifiers attached to an agent invocation."""

    project_id: str | None = None
    feature_id: str | None = None
    requirement_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AgentInput:
    type: AgentType
    data: Mapping[str, Any]
    context: AgentContext | None = None


@dataclass(slots=True)
class ExecutionContext:
    execution_id: str
    agent_id: str
    agent_type: AgentType
    project_id: str | None = None
    feature_id: str | None = None
    requirement_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class QualityScore:
    overall: float
    completeness: float
    consistency: float
    confidence: float

    def as_dict(self) -> dict[str, float]:
        return {
            "overall": self.overall,
            "completeness": self.completeness,
            "consistency": self.consistency,
            "confidence": self.confidence,
        }


@dataclass(slots=True)
class AgentOutput:
    type: AgentType
    data: Any
    quality: QualityScore
    usage: TokenUsage
    model: str
    latency_ms: int
    adapter_id: str | None = None


@dataclass(slots=True)
class ExecutionRecord:
    """One completed agent invocation, as handed to an execution logger."""

    context: ExecutionContext
    input: AgentInput
    output: AgentOutput
    prompt: str = ""
    cost_usd: float | None = None
    completed_at: datetime = field(default_factory=utc_now)


__all__ = [
    "AgentConfig",
    "AgentContext",
    "AgentInput",
    "AgentOutput",
    "AgentType",
    "ExecutionContext",
    "ExecutionRecord",
    "QualityScore",
]
