"""Sinks recording agent executions for observability.

Loggers never raise from :meth:`log`; a failing sink is reported through
structlog and otherwise ignored so it cannot change pipeline control flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from .models import AgentType, ExecutionRecord

logger = structlog.get_logger(__name__)


class ExecutionLogger(Protocol):
    async def log(self, record: ExecutionRecord) -> None: ...


class NoOpExecutionLogger:
    async def log(self, record: ExecutionRecord) -> None:
        return None


class InMemoryExecutionLogger:
    """Retains records in process memory; accessors return copies."""

    def __init__(self) -> None:
        self._records: list[ExecutionRecord] = []

    async def log(self, record: ExecutionRecord) -> None:
        self._records.append(record)

    @property
    def count(self) -> int:
        return len(self._records)

    def get_executions(self) -> list[ExecutionRecord]:
        return list(self._records)

    def get_executions_by_agent_type(self, agent_type: AgentType) -> list[ExecutionRecord]:
        return [record for record in self._records if record.context.agent_type == agent_type]

    def clear(self) -> None:
        self._records.clear()


@dataclass(slots=True)
class ExecutionStart:
    execution_id: str
    agent_id: str
    agent_type: str
    model: str
    project_id: str | None
    feature_id: str | None
    requirement_id: str | None
    input_data: dict[str, Any]
    prompt: str


@dataclass(slots=True)
class ExecutionCompletion:
    output_data: Any
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: int
    quality_score: float
    response_metadata: dict[str, Any]


class ExecutionRepository(Protocol):
    """Durable storage for execution rows; provided by the host application."""

    async def start_execution(self, start: ExecutionStart) -> str: ...

    async def complete_execution(self, execution_id: str, completion: ExecutionCompletion) -> None: ...


class RepositoryExecutionLogger:
    """Persists each record as a ``start`` followed by a ``complete`` write."""

    def __init__(self, repository: ExecutionRepository) -> None:
        self._repository = repository

    async def log(self, record: ExecutionRecord) -> None:
        context, output = record.context, record.output
        try:
            row_id = await self._repository.start_execution(
                ExecutionStart(
                    execution_id=context.execution_id,
                    agent_id=context.agent_id,
                    agent_type=context.agent_type.value,
                    model=output.model,
                    project_id=context.project_id,
                    feature_id=context.feature_id,
                    requirement_id=context.requirement_id,
                    input_data=dict(record.input.data),
                    prompt=record.prompt,
                )
            )
            await self._repository.complete_execution(
                row_id,
                ExecutionCompletion(
                    output_data=output.data,
                    input_tokens=output.usage.input_tokens,
                    output_tokens=output.usage.output_tokens,
                    cost_usd=record.cost_usd or 0.0,
                    latency_ms=output.latency_ms,
                    quality_score=output.quality.overall,
                    response_metadata={
                        "quality": output.quality.as_dict(),
                        "adapter_id": output.adapter_id,
                        "completed_at": record.completed_at.isoformat(),
                    },
                ),
            )
        except Exception as exc:
            logger.error(
                "agents.execution_logger.persist_failed",
                execution_id=context.execution_id,
                agent_type=context.agent_type.value,
                error=str(exc),
            )


__all__ = [
    "ExecutionCompletion",
    "ExecutionLogger",
    "ExecutionRepository",
    "ExecutionStart",
    "InMemoryExecutionLogger",
    "NoOpExecutionLogger",
    "RepositoryExecutionLogger",
]
