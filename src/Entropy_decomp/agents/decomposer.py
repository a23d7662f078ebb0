"""Decomposition agent producing themes, atomic requirements and features.

Documents that exceed the single-call token estimate are split into
overlapping chunks, decomposed one chunk at a time (each prompt lists the
themes already found), and merged:

- themes deduplicate by case-insensitive name, keeping the higher confidence
- atomic requirements deduplicate by word-set Jaccard similarity above 0.9
  and receive fresh ids; feature references are remapped accordingly
- feature candidates deduplicate by case-insensitive title, unioning ids
- clarification questions deduplicate by normalised question text
"""

from __future__ import annotations

import re
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from Entropy_decomp.adapters.registry import AdapterRegistry
from Entropy_decomp.models import (
    AtomicRequirement,
    ClarificationQuestion,
    DecompositionResult,
    FeatureCandidate,
    RequirementType,
    Theme,
)
from Entropy_decomp.utils.time import elapsed_ms

from .execution_logger import ExecutionLogger
from .executor import AgentBehavior, AgentExecutor, AgentHooks
from .models import AgentConfig, AgentContext, AgentInput, AgentOutput, AgentType
from .parsing import parse_json_response
from .prompts import DECOMPOSER_TEMPLATE_KEY, PromptEngine
from .quality import QualityScorer
from .schemas import DECOMPOSITION_SCHEMA
from .validator import OutputValidator

logger = structlog.get_logger(__name__)

CHARS_PER_TOKEN = 4
MAX_TOKENS_PER_CHUNK = 40_000
MAX_CHARS_PER_CHUNK = MAX_TOKENS_PER_CHUNK * CHARS_PER_TOKEN
OVERLAP_CHARS = 2_000
DUPLICATE_SIMILARITY = 0.9
MULTI_PASS_MODEL = "multi-pass"


@dataclass(slots=True, frozen=True)
class Chunk:
    text: str
    start_offset: int
    end_offset: int
    index: int
    total: int


def estimate_tokens(text: str) -> int:
    return -(-len(text) // CHARS_PER_TOKEN)


def create_chunks(
    text: str,
    *,
    max_chars: int = MAX_CHARS_PER_CHUNK,
    overlap: int = OVERLAP_CHARS,
) -> list[Chunk]:
    """Split ``text`` into overlapping chunks of at most ``max_chars``.

    A chunk ends on a paragraph break, else a sentence break, when one lies
    in the second half of the window.
    """
    if len(text) <= max_chars:
        return [Chunk(text=text, start_offset=0, end_offset=len(text), index=0, total=1)]

    spans: list[tuple[int, int]] = []
    offset = 0
    while offset < len(text):
        end = min(offset + max_chars, len(text))
        if end < len(text):
            floor = offset + max_chars * 0.5
            paragraph = text.rfind("\n\n", offset, end)
            sentence = text.rfind(". ", offset, end)
            if paragraph > floor:
                end = paragraph + 2
            elif sentence > floor:
                end = sentence + 2
        spans.append((offset, end))
        if end >= len(text):
            break
        offset = max(offset + 1, end - overlap)

    chunks = [
        Chunk(text=text[start:end], start_offset=start, end_offset=end, index=index, total=len(spans))
        for index, (start, end) in enumerate(spans)
    ]
    logger.info(
        "agents.decomposer.chunked",
        total_chunks=len(chunks),
        original_length=len(text),
        estimated_tokens=estimate_tokens(text),
    )
    return chunks


def text_similarity(first: str, second: str) -> float:
    """Jaccard index of the lower-cased word sets."""
    words_a = set(first.lower().split())
    words_b = set(second.lower().split())
    union = words_a | words_b
    if not union:
        return 1.0
    return len(words_a & words_b) / len(union)


def _question(raw: Mapping[str, Any]) -> ClarificationQuestion:
    return ClarificationQuestion(
        id=str(uuid.uuid4()),
        question=raw["question"],
        question_type=raw["questionType"],
        priority=raw["priority"],
        options=raw.get("options"),
    )


def _feature(raw: Mapping[str, Any], atomic_requirement_ids: list[str]) -> FeatureCandidate:
    return FeatureCandidate(
        title=raw["title"],
        description=raw["description"],
        theme=raw["theme"],
        atomic_requirement_ids=atomic_requirement_ids,
        estimated_complexity=raw.get("estimatedComplexity") or "medium",
        suggested_priority=int(raw.get("suggestedPriority") or 5),
    )


def transform_output(
    requirement_id: str,
    data: Mapping[str, Any],
    *,
    processing_time_ms: int,
    model: str,
) -> DecompositionResult:
    raw_requirements = data.get("atomicRequirements", [])
    themes = [
        Theme(
            id=theme["id"],
            name=theme["name"],
            description=theme["description"],
            confidence=theme["confidence"],
            atomic_requirement_ids=[ar["id"] for ar in raw_requirements if ar.get("theme") == theme["id"]],
        )
        for theme in data.get("themes", [])
    ]
    atomic_requirements = [
        AtomicRequirement(
            id=ar.get("id") or str(uuid.uuid4()),
            text=ar["text"],
            clarity_score=ar["clarityScore"],
            theme=ar.get("theme"),
            dependencies=list(ar.get("dependencies") or []),
            order=index,
        )
        for index, ar in enumerate(raw_requirements)
    ]
    return DecompositionResult(
        requirement_id=requirement_id,
        themes=themes,
        atomic_requirements=atomic_requirements,
        feature_candidates=[
            _feature(fc, list(fc["atomicRequirementIds"])) for fc in data.get("featureCandidates", [])
        ],
        clarification_questions=[_question(q) for q in data.get("clarificationQuestions") or []],
        processing_time_ms=processing_time_ms,
        model=model,
    )


def merge_chunk_results(
    requirement_id: str,
    results: Sequence[Mapping[str, Any]],
    *,
    processing_time_ms: int,
) -> DecompositionResult:
    theme_by_name: dict[str, Mapping[str, Any]] = {}
    for result in results:
        for theme in result.get("themes", []):
            key = theme["name"].lower()
            existing = theme_by_name.get(key)
            if existing is None or theme["confidence"] > existing["confidence"]:
                theme_by_name[key] = theme

    # chunk-local ids repeat across chunks, so remapping is keyed per chunk
    atomic_requirements: list[AtomicRequirement] = []
    id_maps: list[dict[str, str]] = []
    for result in results:
        id_map: dict[str, str] = {}
        id_maps.append(id_map)
        for ar in result.get("atomicRequirements", []):
            duplicate = next(
                (kept for kept in atomic_requirements if text_similarity(kept.text, ar["text"]) > DUPLICATE_SIMILARITY),
                None,
            )
            if duplicate is not None:
                id_map[ar["id"]] = duplicate.id
                continue
            new_id = str(uuid.uuid4())
            id_map[ar["id"]] = new_id
            atomic_requirements.append(
                AtomicRequirement(
                    id=new_id,
                    text=ar["text"],
                    clarity_score=ar["clarityScore"],
                    theme=ar.get("theme"),
                    dependencies=list(ar.get("dependencies") or []),
                    order=len(atomic_requirements),
                )
            )
    features: dict[str, FeatureCandidate] = {}
    for result, id_map in zip(results, id_maps):
        for fc in result.get("featureCandidates", []):
            key = fc["title"].lower()
            ids = list(dict.fromkeys(id_map[item] for item in fc["atomicRequirementIds"] if item in id_map))
            existing = features.get(key)
            if existing is None:
                features[key] = _feature(fc, ids)
            else:
                existing.atomic_requirement_ids = list(dict.fromkeys([*existing.atomic_requirement_ids, *ids]))

    seen_questions: set[str] = set()
    questions: list[ClarificationQuestion] = []
    for result in results:
        for raw in result.get("clarificationQuestions") or []:
            key = re.sub(r"\s+", " ", raw["question"].lower()).strip()
            if key in seen_questions:
                continue
            seen_questions.add(key)
            questions.append(_question(raw))

    themes = [
        Theme(
            id=theme["id"],
            name=theme["name"],
            description=theme["description"],
            confidence=theme["confidence"],
            atomic_requirement_ids=[ar.id for ar in atomic_requirements if ar.theme == theme["id"]],
        )
        for theme in theme_by_name.values()
    ]
    logger.info(
        "agents.decomposer.merged",
        requirement_id=requirement_id,
        themes=len(themes),
        atomic_requirements=len(atomic_requirements),
        feature_candidates=len(features),
        clarification_questions=len(questions),
    )
    return DecompositionResult(
        requirement_id=requirement_id,
        themes=themes,
        atomic_requirements=atomic_requirements,
        feature_candidates=list(features.values()),
        clarification_questions=questions,
        processing_time_ms=processing_time_ms,
        model=MULTI_PASS_MODEL,
    )


def default_decomposer_config(**overrides: object) -> AgentConfig:
    values: dict[str, object] = {
        "id": "decomposer-agent",
        "type": AgentType.DECOMPOSER,
        "adapter_id": "anthropic-claude-4-sonnet",
        "fallback_adapter_ids": ["openai-gpt-4o", "google-gemini-pro"],
        "max_retries": 3,
        "timeout_ms": 120_000,
        "prompt_template_key": DECOMPOSER_TEMPLATE_KEY,
        "temperature": 0.5,
        "max_tokens": 8192,
        "output_schema": DECOMPOSITION_SCHEMA,
    }
    values.update(overrides)
    return AgentConfig.model_validate(values)


class DecomposerAgent:
    """Breaks a classified requirement into a :class:`DecompositionResult`."""

    def __init__(
        self,
        registry: AdapterRegistry,
        *,
        config: AgentConfig | None = None,
        prompts: PromptEngine | None = None,
        validator: OutputValidator | None = None,
        scorer: QualityScorer | None = None,
        execution_logger: ExecutionLogger | None = None,
        hooks: AgentHooks | None = None,
        max_chunk_chars: int = MAX_CHARS_PER_CHUNK,
        overlap_chars: int = OVERLAP_CHARS,
    ) -> None:
        self.config = config or default_decomposer_config()
        self.prompts = prompts or PromptEngine()
        self.max_chunk_chars = max_chunk_chars
        self.overlap_chars = overlap_chars
        self.executor = AgentExecutor(
            self.config,
            registry,
            validator=validator,
            scorer=scorer,
            execution_logger=execution_logger,
            hooks=hooks,
        )
        self.behavior = AgentBehavior(build_prompt=self.build_prompt, parse_output=parse_json_response)

    def build_prompt(self, agent_input: AgentInput) -> str:
        data = agent_input.data
        requirement_type = data["requirement_type"]
        return self.prompts.load_and_render(
            self.config.prompt_template_key,
            {
                "requirement": data["requirement_text"],
                "requirement_type": getattr(requirement_type, "value", requirement_type),
                "chunk_index": data.get("chunk_index"),
                "total_chunks": data.get("total_chunks"),
                "previous_themes": list(data.get("previous_themes") or []),
            },
        )

    async def execute(self, agent_input: AgentInput) -> AgentOutput:
        return await self.executor.execute(agent_input, self.behavior)

    async def decompose(
        self,
        requirement_id: str,
        requirement_text: str,
        requirement_type: RequirementType,
        *,
        context: AgentContext | None = None,
    ) -> DecompositionResult:
        started = time.perf_counter()
        context = context or AgentContext(requirement_id=requirement_id)
        chunks = create_chunks(requirement_text, max_chars=self.max_chunk_chars, overlap=self.overlap_chars)

        if len(chunks) == 1:
            output = await self.execute(
                AgentInput(
                    type=AgentType.DECOMPOSER,
                    data={
                        "requirement_id": requirement_id,
                        "requirement_text": requirement_text,
                        "requirement_type": requirement_type,
                    },
                    context=context,
                )
            )
            return transform_output(
                requirement_id,
                output.data,
                processing_time_ms=elapsed_ms(started),
                model=output.model,
            )

        logger.info("agents.decomposer.multi_pass.start", requirement_id=requirement_id, chunks=len(chunks))
        results: list[Mapping[str, Any]] = []
        previous_themes: list[str] = []
        for chunk in chunks:
            output = await self.execute(
                AgentInput(
                    type=AgentType.DECOMPOSER,
                    data={
                        "requirement_id": requirement_id,
                        "requirement_text": chunk.text,
                        "requirement_type": requirement_type,
                        "chunk_index": chunk.index,
                        "total_chunks": chunk.total,
                        "previous_themes": list(previous_themes),
                    },
                    context=context,
                )
            )
            results.append(output.data)
            for theme in output.data.get("themes", []):
                if theme["name"] not in previous_themes:
                    previous_themes.append(theme["name"])

        return merge_chunk_results(
            requirement_id,
            results,
            processing_time_ms=elapsed_ms(started),
        )


__all__ = [
    "Chunk",
    "DecomposerAgent",
    "create_chunks",
    "default_decomposer_config",
    "estimate_tokens",
    "merge_chunk_results",
    "text_similarity",
    "transform_output",
]
