"""Shared execution path for every model-backed agent.

Key Responsibilities:
    - Turn an :class:`AgentInput` into a validated, scored :class:`AgentOutput`
      using an injected :class:`AgentBehavior` (prompt builder and output
      parser) instead of subclass overrides
    - Obtain completions from the primary adapter and its fallback chain
      within a fixed attempt budget and a per-call timeout
    - Fire lifecycle hooks: ``on_before_execute`` first, then exactly one of
      ``on_after_execute`` or ``on_error``
    - Record every successful execution through the injected execution logger

Collaborators:
    - Upstream: :class:`~Entropy_decomp.agents.classifier.ClassifierAgent` and
      :class:`~Entropy_decomp.agents.decomposer.DecomposerAgent`
    - Downstream: :class:`~Entropy_decomp.adapters.registry.AdapterRegistry`,
      :class:`~Entropy_decomp.agents.validator.OutputValidator`,
      :class:`~Entropy_decomp.agents.quality.QualityScorer`, execution loggers

Side Effects:
    - Network calls through adapters; Prometheus counters; execution records

Thread Safety:
    - Executors hold no per-call state and may serve concurrent calls
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from Entropy_decomp.adapters.base import (
    CompletionRequest,
    CompletionResponse,
    Message,
    ModelAdapter,
    is_retryable_error,
)
from Entropy_decomp.adapters.errors import (
    AdapterChainExhaustedError,
    AdapterError,
    AdapterTimeoutError,
    UnknownAdapterError,
)
from Entropy_decomp.adapters.registry import AdapterRegistry
from Entropy_decomp.observability.metrics import record_adapter_failure, record_agent_execution
from Entropy_decomp.utils.time import elapsed_ms

from .execution_logger import ExecutionLogger, NoOpExecutionLogger
from .models import AgentConfig, AgentInput, AgentOutput, ExecutionContext, ExecutionRecord
from .quality import QualityScorer
from .validator import OutputValidator

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class AgentBehavior:
    """Agent specific strategies plugged into :meth:`AgentExecutor.execute`."""

    build_prompt: Callable[[AgentInput], str]
    parse_output: Callable[[str], Any]


@dataclass(slots=True)
class AgentHooks:
    on_before_execute: Callable[[ExecutionContext], Awaitable[None]] | None = None
    on_after_execute: Callable[[AgentOutput], Awaitable[None]] | None = None
    on_error: Callable[[BaseException], Awaitable[None]] | None = None


def _fails_over(exc: BaseException) -> bool:
    return isinstance(exc, AdapterError) or is_retryable_error(exc)


class AgentExecutor:
    """Runs agent invocations for one :class:`AgentConfig`."""

    def __init__(
        self,
        config: AgentConfig,
        registry: AdapterRegistry,
        *,
        validator: OutputValidator | None = None,
        scorer: QualityScorer | None = None,
        execution_logger: ExecutionLogger | None = None,
        hooks: AgentHooks | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.validator = validator or OutputValidator(coerce_types=True, use_defaults=True)
        self.scorer = scorer or QualityScorer()
        self.execution_logger: ExecutionLogger = execution_logger or NoOpExecutionLogger()
        self.hooks = hooks or AgentHooks()

    def candidates(self) -> list[str]:
        """Primary adapter id followed by its fallbacks, without duplicates."""
        fallbacks = self.config.fallback_adapter_ids
        if fallbacks is None:
            fallbacks = self.registry.get_fallback_chain(self.config.adapter_id)
        ordered = [self.config.adapter_id]
        for adapter_id in fallbacks:
            if adapter_id not in ordered:
                ordered.append(adapter_id)
        return ordered

    def _create_context(self, agent_input: AgentInput) -> ExecutionContext:
        supplied = agent_input.context
        return ExecutionContext(
            execution_id=str(uuid.uuid4()),
            agent_id=self.config.id,
            agent_type=self.config.type,
            project_id=supplied.project_id if supplied else None,
            feature_id=supplied.feature_id if supplied else None,
            requirement_id=supplied.requirement_id if supplied else None,
            metadata=dict(supplied.metadata) if supplied else {},
        )

    def _request(self, prompt: str) -> CompletionRequest:
        return CompletionRequest(
            messages=[Message(role="user", content=prompt)],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            response_format="json" if self.config.output_schema else "text",
        )

    async def complete_with_fallback(self, prompt: str) -> tuple[CompletionResponse, ModelAdapter]:
        """Attempt the completion across the candidate chain.

        Each failed attempt advances to the next candidate, wrapping around
        when the chain is shorter than ``max_retries``; the budget counts
        attempts across all candidates.

        Raises:
            UnknownAdapterError: When the primary adapter is not registered.
            AdapterChainExhaustedError: When every attempt failed.
        """
        candidates = self.candidates()
        request = self._request(prompt)
        timeout = self.config.timeout_ms / 1000
        errors: list[BaseException] = []
        for attempt in range(1, self.config.max_retries + 1):
            adapter_id = candidates[(attempt - 1) % len(candidates)]
            try:
                adapter = self.registry.get(adapter_id)
            except UnknownAdapterError as exc:
                if adapter_id == self.config.adapter_id:
                    raise
                errors.append(exc)
                logger.warning("agents.executor.unknown_fallback", agent_id=self.config.id, adapter_id=adapter_id)
                continue
            try:
                response = await asyncio.wait_for(adapter.complete(request), timeout=timeout)
            except asyncio.TimeoutError:
                error: BaseException = AdapterTimeoutError(
                    f"Agent {self.config.id} timed out after {self.config.timeout_ms}ms on {adapter_id}"
                )
            except Exception as exc:
                if not _fails_over(exc):
                    raise
                error = exc
            else:
                return response, adapter
            errors.append(error)
            record_adapter_failure(adapter_id, getattr(error, "code", type(error).__name__))
            logger.warning(
                "agents.executor.attempt_failed",
                agent_id=self.config.id,
                adapter_id=adapter_id,
                attempt=attempt,
                max_attempts=self.config.max_retries,
                error=str(error),
            )
        cause = AdapterChainExhaustedError.decisive_error(errors)
        raise AdapterChainExhaustedError(
            f"All adapters failed for agent {self.config.id} after {self.config.max_retries} attempts: {cause}",
            errors,
        ) from cause

    async def execute(self, agent_input: AgentInput, behavior: AgentBehavior) -> AgentOutput:
        context = self._create_context(agent_input)
        started = time.perf_counter()
        agent_type = self.config.type.value
        prompt = ""
        try:
            if self.hooks.on_before_execute is not None:
                await self.hooks.on_before_execute(context)
            prompt = behavior.build_prompt(agent_input)
            response, adapter = await self.complete_with_fallback(prompt)
            parsed = behavior.parse_output(response.content)
            schema = self.config.output_schema
            if schema is not None:
                parsed = self.validator.validate_or_raise(parsed, schema)
            quality = self.scorer.score(parsed, schema)
            output = AgentOutput(
                type=self.config.type,
                data=parsed,
                quality=quality,
                usage=response.usage,
                model=response.model,
                latency_ms=elapsed_ms(started),
                adapter_id=adapter.id,
            )
        except Exception as exc:
            record_agent_execution(agent_type, "error", time.perf_counter() - started)
            logger.warning(
                "agents.executor.failed",
                agent_id=self.config.id,
                execution_id=context.execution_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            if self.hooks.on_error is not None:
                try:
                    await self.hooks.on_error(exc)
                except Exception as hook_exc:
                    logger.error("agents.executor.on_error_failed", agent_id=self.config.id, error=str(hook_exc))
            raise

        record_agent_execution(
            agent_type,
            "success",
            time.perf_counter() - started,
            input_tokens=output.usage.input_tokens,
            output_tokens=output.usage.output_tokens,
        )
        logger.info(
            "agents.executor.completed",
            agent_id=self.config.id,
            execution_id=context.execution_id,
            adapter_id=adapter.id,
            model=output.model,
            latency_ms=output.latency_ms,
            quality=round(quality.overall, 3),
        )
        await self._log(
            ExecutionRecord(
                context=context,
                input=agent_input,
                output=output,
                prompt=prompt,
                cost_usd=adapter.estimate_cost(output.usage),
            )
        )
        if self.hooks.on_after_execute is not None:
            await self.hooks.on_after_execute(output)
        return output

    async def _log(self, record: ExecutionRecord) -> None:
        try:
            await self.execution_logger.log(record)
        except Exception as exc:
            logger.error("agents.executor.log_failed", execution_id=record.context.execution_id, error=str(exc))


__all__ = ["AgentBehavior", "AgentExecutor", "AgentHooks"]
