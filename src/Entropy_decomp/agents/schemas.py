"""JSON schemas enforced on classifier and decomposer output."""

from __future__ import annotations

from typing import Any

_UNIT_INTERVAL = {"type": "number", "minimum": 0, "maximum": 1}

CLASSIFICATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["type", "confidence", "reasoning", "suggestedDecomposition"],
    "properties": {
        "type": {"type": "string", "enum": ["new_feature", "enhancement", "epic", "bug_fix"]},
        "confidence": _UNIT_INTERVAL,
        "reasoning": {"type": "string", "minLength": 1},
        "suggestedDecomposition": {"type": "boolean"},
        "indicators": {
            "type": "object",
            "properties": {
                "hasMultipleThemes": {"type": "boolean"},
                "estimatedComplexity": {"type": "string", "enum": ["low", "medium", "high"]},
                "scopeIndicators": {"type": "array", "items": {"type": "string"}},
                "ambiguityFlags": {"type": "array", "items": {"type": "string"}},
            },
        },
    },
}

DECOMPOSITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["themes", "atomicRequirements", "featureCandidates"],
    "properties": {
        "themes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name", "description", "confidence"],
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "confidence": _UNIT_INTERVAL,
                },
            },
        },
        "atomicRequirements": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "text", "clarityScore"],
                "properties": {
                    "id": {"type": "string"},
                    "text": {"type": "string"},
                    "clarityScore": _UNIT_INTERVAL,
                    "theme": {"type": "string"},
                    "dependencies": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "featureCandidates": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "description", "theme", "atomicRequirementIds"],
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "theme": {"type": "string"},
                    "atomicRequirementIds": {"type": "array", "items": {"type": "string"}},
                    "estimatedComplexity": {"type": "string", "enum": ["low", "medium", "high"]},
                    "suggestedPriority": {"type": "number", "minimum": 1, "maximum": 10},
                },
            },
        },
        "clarificationQuestions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["question", "questionType", "priority"],
                "properties": {
                    "question": {"type": "string"},
                    "questionType": {
                        "type": "string",
                        "enum": ["multiple_choice", "yes_no", "text", "dropdown"],
                    },
                    "options": {"type": "array", "items": {"type": "string"}},
                    "priority": {"type": "string", "enum": ["blocking", "important", "nice_to_have"]},
                },
            },
        },
    },
}

OUTPUT_SCHEMAS: dict[str, dict[str, Any]] = {
    "classification": CLASSIFICATION_SCHEMA,
    "decomposition": DECOMPOSITION_SCHEMA,
}

__all__ = ["CLASSIFICATION_SCHEMA", "DECOMPOSITION_SCHEMA", "OUTPUT_SCHEMAS"]
