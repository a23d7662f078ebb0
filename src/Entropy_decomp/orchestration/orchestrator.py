"""Decomposition pipeline orchestrator.

Key Responsibilities:
    - Drive one requirement through extracting, classifying, decomposing,
      scoring and storing, strictly in order
    - Wrap the model-backed stages in a timeout race and a retry policy with
      exponential backoff for transient failures
    - Persist the externally visible requirement status at every transition
      and publish :class:`PipelineState` snapshots through ``on_progress``
    - Resolve every run to a terminal state; errors never escape
      :meth:`DecompositionOrchestrator.execute`

Collaborators:
    - Upstream: job workers and API handlers calling :meth:`execute`
    - Downstream: requirement and feature repositories, text extraction,
      object storage, classifier and decomposer agents, readiness scoring

Side Effects:
    - Repository writes, object storage uploads, Prometheus metrics, logs
      bound to the run's job id

Thread Safety:
    - Per-run data lives in a private run context, so one orchestrator may
      serve concurrent runs for different requirements
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from Entropy_decomp.adapters.registry import AdapterRegistry
from Entropy_decomp.agents.classifier import ClassifierAgent
from Entropy_decomp.agents.decomposer import DecomposerAgent
from Entropy_decomp.agents.execution_logger import ExecutionLogger
from Entropy_decomp.agents.models import AgentContext, AgentType
from Entropy_decomp.agents.prompts import PromptEngine
from Entropy_decomp.config.model_config import ModelConfigManager
from Entropy_decomp.config.settings import OrchestratorSettings
from Entropy_decomp.models import DecompositionResult, FeatureRecord, Requirement
from Entropy_decomp.observability.metrics import record_pipeline_run, record_stage, record_stage_retry
from Entropy_decomp.services.readiness import ReadinessService
from Entropy_decomp.utils.errors import error_code
from Entropy_decomp.utils.logging import bind_correlation_id, reset_correlation_id
from Entropy_decomp.utils.storage_keys import decomposition_key
from Entropy_decomp.utils.time import elapsed_ms, utc_now

from .collaborators import (
    FeatureRepository,
    ObjectStore,
    ProgressCallback,
    ReadinessScorer,
    RequirementClassifier,
    RequirementDecomposer,
    RequirementRepository,
    TextExtractionService,
)
from .errors import CancellationToken, PipelineCancelled, PipelineDataError
from .retry import is_retryable, run_with_timeout
from .state import PipelineError, PipelineState, Stage

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class _Run:
    state: PipelineState
    cancellation: CancellationToken | None = None
    requirement: Requirement | None = None
    decomposition: DecompositionResult | None = None

    def check_cancelled(self) -> None:
        if self.cancellation is not None:
            self.cancellation.raise_if_cancelled()


StageBody = Callable[[_Run], Awaitable[None]]


class DecompositionOrchestrator:
    """Runs the decomposition pipeline for one requirement at a time per call."""

    def __init__(
        self,
        *,
        requirements: RequirementRepository,
        features: FeatureRepository,
        extraction: TextExtractionService,
        storage: ObjectStore,
        classifier: RequirementClassifier,
        decomposer: RequirementDecomposer,
        readiness: ReadinessScorer | None = None,
        settings: OrchestratorSettings | None = None,
        on_progress: ProgressCallback | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.requirements = requirements
        self.features = features
        self.extraction = extraction
        self.storage = storage
        self.classifier = classifier
        self.decomposer = decomposer
        self.readiness: ReadinessScorer = readiness or ReadinessService()
        self.settings = settings or OrchestratorSettings()
        self.on_progress = on_progress
        self._sleep = sleep

    @classmethod
    def from_registry(
        cls,
        registry: AdapterRegistry,
        *,
        model_config: ModelConfigManager | None = None,
        prompts: PromptEngine | None = None,
        execution_logger: ExecutionLogger | None = None,
        **collaborators: Any,
    ) -> DecompositionOrchestrator:
        """Build the orchestrator with agents resolved against ``registry``.

        Agent configs registered in ``model_config`` override the built-in
        classifier and decomposer defaults.
        """
        classifier_config = model_config.get_agent_config(AgentType.CLASSIFIER) if model_config else None
        decomposer_config = model_config.get_agent_config(AgentType.DECOMPOSER) if model_config else None
        prompts = prompts or PromptEngine()
        return cls(
            classifier=ClassifierAgent(
                registry, config=classifier_config, prompts=prompts, execution_logger=execution_logger
            ),
            decomposer=DecomposerAgent(
                registry, config=decomposer_config, prompts=prompts, execution_logger=execution_logger
            ),
            **collaborators,
        )

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------
    async def execute(
        self,
        requirement_id: str,
        job_id: str | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PipelineState:
        """Run every stage for ``requirement_id`` and return the final state.

        The returned state is ``completed``, ``failed`` or ``cancelled``;
        stage failures are recorded on it rather than raised.
        """
        state = PipelineState(requirement_id=requirement_id, job_id=job_id or str(uuid.uuid4()))
        run = _Run(state=state, cancellation=cancellation)
        token = bind_correlation_id(state.job_id)
        started = time.perf_counter()
        logger.info("orchestration.pipeline.started", requirement_id=requirement_id, job_id=state.job_id)
        try:
            await self._emit(state)
            await self._run_stage(run, Stage.EXTRACTING, self._extract)
            await self._run_stage(run, Stage.CLASSIFYING, self._classify)
            await self._run_stage(run, Stage.DECOMPOSING, self._decompose)
            await self._run_stage(run, Stage.SCORING, self._score, retry=False)
            await self._run_stage(run, Stage.STORING, self._store, retry=False)

            state.transition(Stage.COMPLETED)
            await self._update_status(state)
            logger.info(
                "orchestration.pipeline.completed",
                requirement_id=requirement_id,
                duration_ms=elapsed_ms(started),
                feature_count=state.metadata.get("feature_count", 0),
            )
            await self._emit(state)
        except PipelineCancelled as exc:
            await self._finish_with_error(state, Stage.CANCELLED, exc)
        except Exception as exc:
            await self._finish_with_error(state, Stage.FAILED, exc)
        finally:
            record_pipeline_run(state.stage.value)
            reset_correlation_id(token)
        return state

    async def _finish_with_error(self, state: PipelineState, terminal: Stage, exc: Exception) -> None:
        failed_stage = state.stage
        previous = state.error
        state.error = PipelineError(
            stage=failed_stage,
            code=error_code(exc) or "PIPELINE_ERROR",
            message=str(exc),
            retryable=False,
            retry_count=previous.retry_count if previous is not None else 0,
        )
        if not state.stage.terminal:
            state.transition(terminal)
        log = logger.info if terminal is Stage.CANCELLED else logger.error
        log(
            "orchestration.pipeline.failed" if terminal is Stage.FAILED else "orchestration.pipeline.cancelled",
            requirement_id=state.requirement_id,
            stage=failed_stage.value,
            code=state.error.code,
            error=state.error.message,
            retry_count=state.error.retry_count,
        )
        await self._update_status(state, error=state.error.message)
        await self._emit(state)

    # ------------------------------------------------------------------
    # Stage wrapper
    # ------------------------------------------------------------------
    async def _run_stage(self, run: _Run, stage: Stage, body: StageBody, *, retry: bool = True) -> None:
        run.check_cancelled()
        run.state.transition(stage)
        await self._update_status(run.state)
        await self._emit(run.state)
        started = time.perf_counter()
        try:
            if retry:
                await self._execute_with_retry(run, stage, body)
            else:
                await body(run)
        except Exception:
            record_stage(stage.value, "error", time.perf_counter() - started)
            raise
        record_stage(stage.value, "success", time.perf_counter() - started)
        logger.debug(
            "orchestration.stage.completed",
            requirement_id=run.state.requirement_id,
            stage=stage.value,
            duration_ms=elapsed_ms(started),
        )

    async def _execute_with_retry(self, run: _Run, stage: Stage, body: StageBody) -> None:
        max_retries = self.settings.max_retries
        base = self.settings.backoff_base_seconds
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=base, exp_base=base),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                try:
                    run.check_cancelled()
                    await run_with_timeout(stage.value, lambda: body(run), self.settings.timeout_ms)
                except Exception as exc:
                    if is_retryable(exc):
                        await self._record_retry(run.state, stage, exc, number, exhausted=number >= max_retries)
                    raise

    async def _record_retry(
        self, state: PipelineState, stage: Stage, exc: Exception, attempt: int, *, exhausted: bool = False
    ) -> None:
        code = error_code(exc) or "UNKNOWN_ERROR"
        state.error = PipelineError(
            stage=stage,
            code=code,
            message=str(exc),
            retryable=True,
            retry_count=attempt,
        )
        state.updated_at = utc_now()
        if not exhausted:
            record_stage_retry(stage.value, code)
        logger.warning(
            "orchestration.stage.retries_exhausted" if exhausted else "orchestration.stage.retry",
            requirement_id=state.requirement_id,
            stage=stage.value,
            attempt=attempt,
            max_attempts=self.settings.max_retries,
            code=code,
            error=str(exc),
        )
        await self._emit(state)

    async def _emit(self, state: PipelineState) -> None:
        if self.on_progress is None:
            return
        try:
            result = self.on_progress(state.snapshot())
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.warning(
                "orchestration.progress_callback.failed",
                requirement_id=state.requirement_id,
                stage=state.stage.value,
                error=str(exc),
            )

    async def _update_status(self, state: PipelineState, *, error: str | None = None) -> None:
        try:
            await self.requirements.update_status(state.requirement_id, state.status, error)
        except Exception as exc:
            logger.error(
                "orchestration.status_update.failed",
                requirement_id=state.requirement_id,
                status=state.status.value,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Stage bodies
    # ------------------------------------------------------------------
    async def _require(self, run: _Run) -> Requirement:
        requirement = await self.requirements.find_by_id(run.state.requirement_id)
        if requirement is None:
            raise PipelineDataError(
                f"Requirement not found: {run.state.requirement_id}", code="REQUIREMENT_NOT_FOUND"
            )
        run.requirement = requirement
        return requirement

    async def _extracted_text(self, requirement: Requirement) -> str:
        if not requirement.extracted_text_s3_key:
            raise PipelineDataError(
                f"Extracted text not found for requirement {requirement.id}", code="EXTRACTED_TEXT_NOT_FOUND"
            )
        payload = await self.storage.download(requirement.extracted_text_s3_key)
        if payload is None:
            raise PipelineDataError(
                f"Extracted text file not found: {requirement.extracted_text_s3_key}",
                code="EXTRACTED_TEXT_FILE_NOT_FOUND",
            )
        return payload.decode("utf-8")

    def _client_id(self, requirement: Requirement) -> str:
        return requirement.client_id or self.settings.default_client_id

    @staticmethod
    def _agent_context(requirement: Requirement) -> AgentContext:
        return AgentContext(project_id=requirement.project_id, requirement_id=requirement.id)

    async def _extract(self, run: _Run) -> None:
        requirement = await self._require(run)
        if not requirement.source_file_s3_key:
            raise PipelineDataError(
                f"Requirement {requirement.id} has no source file", code="SOURCE_FILE_NOT_FOUND"
            )
        result = await self.extraction.extract_from_s3(requirement.source_file_s3_key)
        key = await self.extraction.save_extracted_text(
            requirement.id, requirement.project_id, self._client_id(requirement), result
        )
        await self.requirements.update_extracted_text(requirement.id, key)
        run.state.metadata["extracted_text_size"] = result.word_count

    async def _classify(self, run: _Run) -> None:
        requirement = await self._require(run)
        text = await self._extracted_text(requirement)
        result = await self.classifier.classify(requirement.id, text, context=self._agent_context(requirement))
        await self.requirements.update_classification(requirement.id, result.type, result.confidence)
        run.state.metadata["classification_type"] = result.type.value
        run.state.metadata["classification_confidence"] = result.confidence

    async def _decompose(self, run: _Run) -> None:
        requirement = await self._require(run)
        if requirement.type is None:
            raise PipelineDataError(
                f"Requirement {requirement.id} has not been classified", code="REQUIREMENT_NOT_CLASSIFIED"
            )
        text = await self._extracted_text(requirement)
        result = await self.decomposer.decompose(
            requirement.id, text, requirement.type, context=self._agent_context(requirement)
        )
        run.decomposition = result
        metadata = run.state.metadata
        metadata["decomposition_result"] = result.to_json_dict()
        metadata["theme_count"] = len(result.themes)
        metadata["feature_count"] = len(result.feature_candidates)
        metadata["question_count"] = len(result.clarification_questions)

    def _decomposition(self, run: _Run) -> DecompositionResult:
        if run.decomposition is None:
            raise PipelineDataError(
                f"Decomposition result not found for requirement {run.state.requirement_id}",
                code="DECOMPOSITION_RESULT_NOT_FOUND",
            )
        return run.decomposition

    async def _score(self, run: _Run) -> None:
        result = self._decomposition(run)
        scored = []
        for candidate in result.feature_candidates:
            linked = [ar for ar in result.atomic_requirements if ar.id in candidate.atomic_requirement_ids]
            questions = [q for q in result.clarification_questions if q.feature_id == candidate.title]
            score = self.readiness.calculate_score(candidate, linked, questions)
            scored.append(candidate.model_copy(update={"readiness_score": score}))
        run.decomposition = result.model_copy(update={"feature_candidates": scored})
        run.state.metadata["decomposition_result"] = run.decomposition.to_json_dict()

    async def _store(self, run: _Run) -> None:
        result = self._decomposition(run)
        requirement = run.requirement or await self._require(run)
        client_id = self._client_id(requirement)

        def key(artifact: Any) -> str:
            return decomposition_key(client_id, requirement.project_id, requirement.id, artifact)

        await self.storage.upload_json(key("result"), result.to_json_dict())
        await self.storage.upload_json(key("themes"), [theme.to_json_dict() for theme in result.themes])
        await self.storage.upload_json(
            key("features"), [candidate.to_json_dict() for candidate in result.feature_candidates]
        )

        for candidate in result.feature_candidates:
            readiness = candidate.readiness_score.overall if candidate.readiness_score is not None else 0.0
            await self.features.create_feature(
                FeatureRecord(
                    requirement_id=requirement.id,
                    project_id=requirement.project_id,
                    title=candidate.title,
                    description=candidate.description,
                    theme=candidate.theme,
                    readiness_score=readiness,
                    metadata={
                        "atomicRequirementIds": list(candidate.atomic_requirement_ids),
                        "estimatedComplexity": candidate.estimated_complexity,
                        "suggestedPriority": candidate.suggested_priority,
                        "readinessScore": readiness,
                    },
                    created_at=utc_now(),
                )
            )
        logger.info(
            "orchestration.store.completed",
            requirement_id=requirement.id,
            features=len(result.feature_candidates),
        )


__all__ = ["DecompositionOrchestrator"]
