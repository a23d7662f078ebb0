"""Domain models exchanged between pipeline stages and persisted artefacts.

Models serialise with camelCase aliases (``model_dump(by_alias=True)``) so the
JSON written to object storage matches the structured-output contract the
agents enforce, while Python code uses snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequirementType(str, Enum):
    NEW_FEATURE = "new_feature"
    ENHANCEMENT = "enhancement"
    EPIC = "epic"
    BUG_FIX = "bug_fix"


class RequirementStatus(str, Enum):
    """Externally visible requirement lifecycle."""

    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    DECOMPOSING = "decomposing"
    DECOMPOSED = "decomposed"
    FAILED = "failed"


Complexity = Literal["low", "medium", "high"]
QuestionType = Literal["multiple_choice", "yes_no", "text", "dropdown"]
QuestionPriority = Literal["blocking", "important", "nice_to_have"]


class DomainModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Requirement(DomainModel):
    """Subset of the persisted requirement record the pipeline reads."""

    id: str
    project_id: str
    client_id: str | None = None
    status: RequirementStatus = RequirementStatus.UPLOADED
    source_file_s3_key: str | None = None
    extracted_text_s3_key: str | None = None
    type: RequirementType | None = None
    classification_confidence: float | None = None
    error: str | None = None


class ExtractionResult(DomainModel):
    text: str
    word_count: int
    page_count: int | None = None
    detected_language: str | None = None


class ClassificationIndicators(DomainModel):
    has_multiple_themes: bool | None = None
    estimated_complexity: Complexity | None = None
    scope_indicators: list[str] = Field(default_factory=list)
    ambiguity_flags: list[str] = Field(default_factory=list)


class ClassificationResult(DomainModel):
    requirement_id: str
    type: RequirementType
    confidence: float
    reasoning: str
    suggested_decomposition: bool
    indicators: ClassificationIndicators | None = None


class Theme(DomainModel):
    id: str
    name: str
    description: str
    confidence: float
    atomic_requirement_ids: list[str] = Field(default_factory=list)


class AtomicRequirement(DomainModel):
    id: str
    text: str
    clarity_score: float
    feature_id: str = ""
    theme: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    order: int = 0


class ClarificationQuestion(DomainModel):
    id: str
    question: str
    question_type: QuestionType
    priority: QuestionPriority
    feature_id: str = ""
    options: list[str] | None = None
    answer: str | None = None


class ReadinessComponents(DomainModel):
    business_clarity: float
    technical_clarity: float
    testability: float
    completeness: float
    consistency: float


class ReadinessScore(DomainModel):
    overall: float
    components: ReadinessComponents
    blocking_questions: list[ClarificationQuestion] = Field(default_factory=list)
    clarifying_questions: list[ClarificationQuestion] = Field(default_factory=list)
    improvement_suggestions: list[str] = Field(default_factory=list)
    ready: bool = False
    estimated_minutes_to_ready: int = 0


class FeatureCandidate(DomainModel):
    title: str
    description: str
    theme: str
    atomic_requirement_ids: list[str] = Field(default_factory=list)
    estimated_complexity: Complexity = "medium"
    suggested_priority: int = 5
    readiness_score: ReadinessScore | None = None


class DecompositionResult(DomainModel):
    requirement_id: str
    themes: list[Theme] = Field(default_factory=list)
    atomic_requirements: list[AtomicRequirement] = Field(default_factory=list)
    feature_candidates: list[FeatureCandidate] = Field(default_factory=list)
    clarification_questions: list[ClarificationQuestion] = Field(default_factory=list)
    processing_time_ms: int = 0
    model: str = ""


class FeatureRecord(DomainModel):
    """Payload handed to the feature repository for each stored candidate."""

    requirement_id: str
    project_id: str
    title: str
    description: str
    theme: str
    readiness_score: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


__all__ = [
    "AtomicRequirement",
    "ClarificationQuestion",
    "ClassificationIndicators",
    "ClassificationResult",
    "DecompositionResult",
    "DomainModel",
    "ExtractionResult",
    "FeatureCandidate",
    "FeatureRecord",
    "ReadinessComponents",
    "ReadinessScore",
    "Requirement",
    "RequirementStatus",
    "RequirementType",
    "Theme",
]
