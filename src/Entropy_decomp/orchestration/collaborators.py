"""Interfaces the orchestrator consumes from persistence, storage and agents."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from Entropy_decomp.agents.models import AgentContext
from Entropy_decomp.models import (
    AtomicRequirement,
    ClarificationQuestion,
    ClassificationResult,
    DecompositionResult,
    ExtractionResult,
    FeatureCandidate,
    FeatureRecord,
    ReadinessScore,
    Requirement,
    RequirementStatus,
    RequirementType,
)

from .state import PipelineState

ProgressCallback = Callable[[PipelineState], Awaitable[None] | None]


class RequirementRepository(Protocol):
    async def find_by_id(self, requirement_id: str) -> Requirement | None: ...

    async def update_status(
        self, requirement_id: str, status: RequirementStatus, error: str | None = None
    ) -> None: ...

    async def update_extracted_text(self, requirement_id: str, s3_key: str) -> None: ...

    async def update_classification(
        self, requirement_id: str, requirement_type: RequirementType, confidence: float
    ) -> None: ...


class FeatureRepository(Protocol):
    async def create_feature(self, feature: FeatureRecord) -> str: ...


class TextExtractionService(Protocol):
    async def extract_from_s3(self, s3_key: str) -> ExtractionResult: ...

    async def save_extracted_text(
        self, requirement_id: str, project_id: str, client_id: str, result: ExtractionResult
    ) -> str: ...


class ObjectStore(Protocol):
    async def upload(self, key: str, body: bytes, content_type: str = "application/octet-stream") -> None: ...

    async def download(self, key: str) -> bytes | None: ...

    async def upload_json(self, key: str, payload: Any) -> None: ...

    async def download_json(self, key: str) -> Any | None: ...


class RequirementClassifier(Protocol):
    async def classify(
        self, requirement_id: str, requirement_text: str, *, context: AgentContext | None = None
    ) -> ClassificationResult: ...


class RequirementDecomposer(Protocol):
    async def decompose(
        self,
        requirement_id: str,
        requirement_text: str,
        requirement_type: RequirementType,
        *,
        context: AgentContext | None = None,
    ) -> DecompositionResult: ...


class ReadinessScorer(Protocol):
    def calculate_score(
        self,
        feature: FeatureCandidate,
        atomic_requirements: Sequence[AtomicRequirement],
        questions: Sequence[ClarificationQuestion],
    ) -> ReadinessScore: ...


__all__ = [
    "FeatureRepository",
    "ObjectStore",
    "ProgressCallback",
    "ReadinessScorer",
    "RequirementClassifier",
    "RequirementDecomposer",
    "RequirementRepository",
    "TextExtractionService",
]
