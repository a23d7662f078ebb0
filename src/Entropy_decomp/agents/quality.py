"""Heuristic quality scoring for structured agent output.

``overall`` is the arithmetic mean of three signals, clamped to ``[0, 1]``:

completeness
    Share of non-empty top-level values, or with a schema the weighted share
    of declared properties present (required weigh 2, optional 1).
consistency
    ``1 - violations / 5`` floored at 0, counting empty ``*Id*`` arrays,
    duplicate ``id`` values inside arrays of objects, and ``*Score*`` /
    ``*confidence*`` numbers outside ``[0, 1]``.
confidence
    The top-level numeric ``confidence``, else the mean of nested
    ``confidence`` values, else 0.8. Values are reported unclamped.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from .models import QualityScore

DEFAULT_CONFIDENCE = 0.8
MAX_PENALTIES = 5


class QualityLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    UNACCEPTABLE = "unacceptable"


QUALITY_THRESHOLDS: tuple[tuple[float, QualityLevel], ...] = (
    (0.9, QualityLevel.EXCELLENT),
    (0.7, QualityLevel.GOOD),
    (0.5, QualityLevel.ACCEPTABLE),
    (0.3, QualityLevel.POOR),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class QualityScorer:
    def score(self, output: Any, schema: Mapping[str, Any] | None = None) -> QualityScore:
        data: Mapping[str, Any] = output if isinstance(output, Mapping) else {}
        completeness = self.completeness(data, schema)
        consistency = self.consistency(data)
        confidence = self.confidence(data)
        overall = (completeness + consistency + confidence) / 3
        return QualityScore(
            overall=_clamp(overall),
            completeness=completeness,
            consistency=consistency,
            confidence=confidence,
        )

    def completeness(self, data: Mapping[str, Any], schema: Mapping[str, Any] | None = None) -> float:
        if schema is None or "properties" not in schema:
            if not data:
                return 1.0
            return sum(1 for value in data.values() if _has_value(value)) / len(data)

        properties: Mapping[str, Any] = schema.get("properties") or {}
        if not properties:
            return 1.0
        required = set(schema.get("required") or ())
        total = 0
        present = 0
        for key in properties:
            weight = 2 if key in required else 1
            total += weight
            if _has_value(data.get(key)):
                present += weight
        return present / total

    def consistency(self, data: Mapping[str, Any]) -> float:
        violations = 0
        for key, value in data.items():
            if isinstance(value, list):
                if "Id" in key and not value:
                    violations += 1
                ids = [
                    item.get("id")
                    for item in value
                    if isinstance(item, Mapping) and item.get("id")
                ]
                if len(ids) != len(set(map(repr, ids))):
                    violations += 1
            elif _is_number(value) and ("Score" in key or "confidence" in key):
                if value < 0 or value > 1:
                    violations += 1
        return max(0.0, 1 - min(violations, MAX_PENALTIES) / MAX_PENALTIES)

    def confidence(self, data: Mapping[str, Any]) -> float:
        top_level = data.get("confidence")
        if _is_number(top_level):
            return float(top_level)

        found: list[float] = []
        for value in data.values():
            candidates = value if isinstance(value, list) else [value]
            for item in candidates:
                if isinstance(item, Mapping) and _is_number(item.get("confidence")):
                    found.append(float(item["confidence"]))
        if not found:
            return DEFAULT_CONFIDENCE
        return sum(found) / len(found)


def get_quality_level(score: float) -> QualityLevel:
    for threshold, level in QUALITY_THRESHOLDS:
        if score >= threshold:
            return level
    return QualityLevel.UNACCEPTABLE


__all__ = ["QualityLevel", "QualityScorer", "get_quality_level"]
