"""Pipeline stage machine and the per-run state snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, TypedDict

from Entropy_decomp.models import RequirementStatus
from Entropy_decomp.utils.time import utc_now


class Stage(str, Enum):
    """Ordered pipeline stages plus the two absorbing error states."""

    QUEUED = "queued"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    DECOMPOSING = "decomposing"
    SCORING = "scoring"
    STORING = "storing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in {Stage.COMPLETED, Stage.FAILED, Stage.CANCELLED}


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.QUEUED,
    Stage.EXTRACTING,
    Stage.CLASSIFYING,
    Stage.DECOMPOSING,
    Stage.SCORING,
    Stage.STORING,
    Stage.COMPLETED,
)

STAGE_PROGRESS: dict[Stage, int] = {
    Stage.QUEUED: 5,
    Stage.EXTRACTING: 25,
    Stage.CLASSIFYING: 40,
    Stage.DECOMPOSING: 75,
    Stage.SCORING: 90,
    Stage.STORING: 95,
    Stage.COMPLETED: 100,
    Stage.FAILED: 0,
    Stage.CANCELLED: 0,
}

STAGE_STATUS: dict[Stage, RequirementStatus] = {
    Stage.QUEUED: RequirementStatus.UPLOADED,
    Stage.EXTRACTING: RequirementStatus.EXTRACTING,
    Stage.CLASSIFYING: RequirementStatus.CLASSIFYING,
    Stage.DECOMPOSING: RequirementStatus.DECOMPOSING,
    Stage.SCORING: RequirementStatus.DECOMPOSING,
    Stage.STORING: RequirementStatus.DECOMPOSING,
    Stage.COMPLETED: RequirementStatus.DECOMPOSED,
    Stage.FAILED: RequirementStatus.FAILED,
    Stage.CANCELLED: RequirementStatus.FAILED,
}


class PipelineMetadata(TypedDict, total=False):
    """Keys the orchestrator writes into :attr:`PipelineState.metadata`.

    ``extracted_text_size``
        Word count reported by text extraction (extracting stage).
    ``classification_type`` / ``classification_confidence``
        Requirement type value and model confidence (classifying stage).
    ``decomposition_result``
        Full decomposition payload in its camelCase JSON form (decomposing stage).
    ``theme_count`` / ``feature_count`` / ``question_count``
        Sizes of the decomposition result (decomposing stage).
    """

    extracted_text_size: int
    classification_type: str
    classification_confidence: float
    decomposition_result: dict[str, Any]
    theme_count: int
    feature_count: int
    question_count: int


@dataclass(slots=True)
class PipelineError:
    stage: Stage
    code: str
    message: str
    retryable: bool = False
    retry_count: int = 0


@dataclass(slots=True)
class PipelineState:
    """Mutable progress record for one pipeline run.

    Only the orchestrator mutates an instance; progress callbacks receive
    snapshots so later transitions do not rewrite what they observed.
    """

    requirement_id: str
    job_id: str
    stage: Stage = Stage.QUEUED
    progress: int = STAGE_PROGRESS[Stage.QUEUED]
    started_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    error: PipelineError | None = None
    metadata: PipelineMetadata = field(default_factory=lambda: PipelineMetadata())

    def transition(self, stage: Stage) -> None:
        if self.stage.terminal:
            raise ValueError(f"Pipeline already finished in stage {self.stage.value}")
        if not stage.terminal or stage is Stage.COMPLETED:
            if STAGE_ORDER.index(stage) < STAGE_ORDER.index(self.stage):
                raise ValueError(f"Cannot move from {self.stage.value} back to {stage.value}")
        self.stage = stage
        self.progress = STAGE_PROGRESS[stage]
        self.updated_at = utc_now()
        if stage is Stage.COMPLETED:
            self.completed_at = self.updated_at

    @property
    def status(self) -> RequirementStatus:
        return STAGE_STATUS[self.stage]

    def snapshot(self) -> PipelineState:
        error = replace(self.error) if self.error is not None else None
        return replace(self, error=error, metadata=PipelineMetadata(**self.metadata))


__all__ = [
    "PipelineError",
    "PipelineMetadata",
    "PipelineState",
    "STAGE_ORDER",
    "STAGE_PROGRESS",
    "STAGE_STATUS",
    "Stage",
]
