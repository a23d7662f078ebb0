"""Prompt templates rendered with Jinja2.

Templates are addressed by key and version through a :class:`TemplateSource`;
rendering uses ``StrictUndefined`` so a missing variable fails loudly instead
of producing a silently truncated prompt.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog
from jinja2 import Environment, StrictUndefined, Template, meta

logger = structlog.get_logger(__name__)


class TemplateNotFoundError(KeyError):
    pass


class TemplateSource(Protocol):
    def load(self, key: str, version: str = "latest") -> str: ...


class InMemoryTemplateSource:
    """Versioned templates held in process memory."""

    def __init__(self, templates: Mapping[str, str] | None = None) -> None:
        self._templates: dict[str, dict[str, str]] = {}
        for key, template in (templates or {}).items():
            self.set(key, template)

    def set(self, key: str, template: str, version: str = "latest") -> None:
        self._templates.setdefault(key, {})[version] = template

    def load(self, key: str, version: str = "latest") -> str:
        versions = self._templates.get(key)
        if versions is None:
            raise TemplateNotFoundError(f"Template not found: {key}")
        template = versions.get(version) or versions.get("latest")
        if template is None:
            raise TemplateNotFoundError(f"Template version not found: {key}@{version}")
        return template


@dataclass(slots=True)
class TemplateValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    variables: list[str] = field(default_factory=list)


def _bullets(items: Iterable[Any]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _numbered(items: Iterable[Any]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))


def _truncate_text(value: str, length: int) -> str:
    return value if len(value) <= length else f"{value[:length]}..."


class PromptEngine:
    def __init__(self, source: TemplateSource | None = None) -> None:
        self.source: TemplateSource = source or InMemoryTemplateSource(DEFAULT_TEMPLATES)
        self._env = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["json"] = lambda value: json.dumps(value, indent=2, default=str)
        self._env.filters["bullets"] = _bullets
        self._env.filters["numbered"] = _numbered
        self._env.filters["truncate_text"] = _truncate_text
        self._compiled: dict[str, Template] = {}

    def _compile(self, template: str) -> Template:
        key = hashlib.sha256(template.encode("utf-8")).hexdigest()
        compiled = self._compiled.get(key)
        if compiled is None:
            compiled = self._env.from_string(template)
            self._compiled[key] = compiled
        return compiled

    def render(self, template: str, variables: Mapping[str, Any]) -> str:
        return self._compile(template).render(**variables)

    def load(self, key: str, version: str = "latest") -> str:
        logger.debug("agents.prompts.load", template_key=key, version=version)
        return self.source.load(key, version)

    def load_and_render(self, key: str, variables: Mapping[str, Any], version: str = "latest") -> str:
        return self.render(self.load(key, version), variables)

    def validate(self, template: str, required: Iterable[str]) -> TemplateValidation:
        referenced = meta.find_undeclared_variables(self._env.parse(template))
        errors = [
            f"Required variable not found in template: {name}"
            for name in required
            if name not in referenced
        ]
        return TemplateValidation(valid=not errors, errors=errors, variables=sorted(referenced))


CLASSIFIER_TEMPLATE_KEY = "agents/classifier/v1.0.0/system"
DECOMPOSER_TEMPLATE_KEY = "agents/decomposer/v1.0.0/system"

CLASSIFIER_TEMPLATE = """You are a requirements analyst. Classify the requirement below.

## Requirement
{{ requirement }}

## Categories
- new_feature: a capability that does not exist yet
- enhancement: an improvement to an existing capability
- epic: a large body of work that spans several features
- bug_fix: a correction of existing behaviour

Respond with a single JSON object:
{"type": "<category>", "confidence": <0.0-1.0>, "reasoning": "<why>",
 "suggestedDecomposition": <true|false>,
 "indicators": {"hasMultipleThemes": <bool>, "estimatedComplexity": "low|medium|high",
  "scopeIndicators": ["..."], "ambiguityFlags": ["..."]}}
"""

DECOMPOSER_TEMPLATE = """You are an expert requirements decomposer. Break the requirement below into
themes, atomic requirements, feature candidates and clarification questions.

## Requirement
{{ requirement }}

## Requirement Type
{{ requirement_type }}

{% if chunk_index is not none %}
## Processing Context
This is chunk {{ chunk_index + 1 }} of {{ total_chunks }}.
{% if previous_themes %}
Previously identified themes from earlier chunks:
{{ previous_themes | bullets }}
Reuse these theme names where the content matches.
{% endif %}
{% endif %}

## Response Format
Respond with a single JSON object with the keys "themes" (id, name, description,
confidence), "atomicRequirements" (id, text, clarityScore, theme, dependencies),
"featureCandidates" (title, description, theme, atomicRequirementIds,
estimatedComplexity low|medium|high, suggestedPriority 1-10) and
"clarificationQuestions" (question, questionType multiple_choice|yes_no|text|dropdown,
options, priority blocking|important|nice_to_have).
"""

DEFAULT_TEMPLATES: dict[str, str] = {
    CLASSIFIER_TEMPLATE_KEY: CLASSIFIER_TEMPLATE,
    DECOMPOSER_TEMPLATE_KEY: DECOMPOSER_TEMPLATE,
}

__all__ = [
    "CLASSIFIER_TEMPLATE_KEY",
    "DECOMPOSER_TEMPLATE_KEY",
    "DEFAULT_TEMPLATES",
    "InMemoryTemplateSource",
    "PromptEngine",
    "TemplateNotFoundError",
    "TemplateSource",
    "TemplateValidation",
]
