"""Readiness scoring for decomposed feature candidates.

The overall score is a weighted sum of five heuristic components, each in
``[0, 1]`` and rounded to two decimals. A feature is ready when the rounded
score reaches the threshold and no blocking question is unanswered.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from Entropy_decomp.models import (
    AtomicRequirement,
    ClarificationQuestion,
    FeatureCandidate,
    ReadinessComponents,
    ReadinessScore,
)

READINESS_THRESHOLD = 0.7
MINUTES_PER_BLOCKING_QUESTION = 10

SCORING_WEIGHTS: Mapping[str, float] = {
    "business_clarity": 0.3,
    "technical_clarity": 0.25,
    "testability": 0.25,
    "completeness": 0.1,
    "consistency": 0.1,
}

AMBIGUOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"should be (fast|quick|responsive|user-friendly|intuitive)",
        r"as (needed|required|appropriate)",
        r"etc\.?$",
        r"\btbd\b",
        r"\bsome\b",
        r"\bvarious\b",
        r"\betc\b",
        r"\band more\b",
        r"\band so on\b",
    )
)

_USER_STORY = re.compile(r"as a .+, i want .+", re.IGNORECASE)
_BUSINESS_VALUE = re.compile(r"(value|benefit|improve|increase|reduce|save|enable|allow)", re.IGNORECASE)
_STAKEHOLDER = re.compile(r"(user|admin|customer|client|manager|team|developer|operator)", re.IGNORECASE)
_SYSTEM_CONTEXT = re.compile(r"(api|database|service|module|component|endpoint|interface)", re.IGNORECASE)
_INTEGRATION = re.compile(r"(integrate|connect|call|webhook|event|subscribe|publish)", re.IGNORECASE)
_DATA = re.compile(r"(store|save|retrieve|query|data|record|field|column|table)", re.IGNORECASE)
_MEASURABLE = re.compile(
    r"(should|must|will|shall) .*(return|display|show|be|have|contain|respond|complete)", re.IGNORECASE
)
_METRIC = re.compile(r"(\d+\s*(ms|seconds?|minutes?|%|percent|times?|requests?))", re.IGNORECASE)
_TBD = re.compile(r"\btbd\b", re.IGNORECASE)
_CONTRADICTIONS = (
    (re.compile(r"\brequired\b.*\boptional\b", re.IGNORECASE), 0.2),
    (re.compile(r"\balways\b.*\bnever\b", re.IGNORECASE), 0.2),
    (re.compile(r"\bmust\b.*\bshould not\b", re.IGNORECASE), 0.2),
)


def _bounded(value: float) -> float:
    return max(0.0, min(1.0, value))


class ReadinessService:
    """Scores how implementation-ready a feature candidate is."""

    def __init__(self, threshold: float = READINESS_THRESHOLD) -> None:
        self.threshold = threshold

    def calculate_score(
        self,
        feature: FeatureCandidate,
        atomic_requirements: Sequence[AtomicRequirement],
        questions: Sequence[ClarificationQuestion],
        *,
        dependencies: Sequence[str] = (),
    ) -> ReadinessScore:
        components = {
            "business_clarity": self._business_clarity(feature, atomic_requirements),
            "technical_clarity": self._technical_clarity(atomic_requirements, dependencies),
            "testability": self._testability(atomic_requirements),
            "completeness": self._completeness(feature, atomic_requirements, questions),
            "consistency": self._consistency(feature, atomic_requirements, dependencies),
        }
        overall = round(sum(value * SCORING_WEIGHTS[key] for key, value in components.items()), 2)
        blocking = [q for q in questions if q.priority == "blocking" and not q.answer]
        clarifying = [q for q in questions if q.priority != "blocking" and not q.answer]
        return ReadinessScore(
            overall=overall,
            components=ReadinessComponents(**{key: round(value, 2) for key, value in components.items()}),
            blocking_questions=blocking,
            clarifying_questions=clarifying,
            improvement_suggestions=self._suggestions(components),
            ready=overall >= self.threshold and not blocking,
            estimated_minutes_to_ready=len(blocking) * MINUTES_PER_BLOCKING_QUESTION,
        )

    def _business_clarity(self, feature: FeatureCandidate, ars: Sequence[AtomicRequirement]) -> float:
        score = 0.0
        text = " ".join([feature.description, *(ar.text for ar in ars)])
        if _USER_STORY.search(feature.description):
            score += 0.3
        if _BUSINESS_VALUE.search(feature.description):
            score += 0.3
        if _STAKEHOLDER.search(feature.description):
            score += 0.2
        ambiguity = sum(1 for pattern in AMBIGUOUS_PATTERNS if pattern.search(text))
        score += max(0.0, 0.2 - ambiguity * 0.05)
        return _bounded(score)

    def _technical_clarity(self, ars: Sequence[AtomicRequirement], dependencies: Sequence[str]) -> float:
        score = 0.0
        text = " ".join(ar.text for ar in ars)
        if _SYSTEM_CONTEXT.search(text):
            score += 0.3
        if _INTEGRATION.search(text):
            score += 0.3
        if _DATA.search(text):
            score += 0.2
        if not any(dep.startswith("UNDEFINED") for dep in dependencies):
            score += 0.2
        return _bounded(score)

    def _testability(self, ars: Sequence[AtomicRequirement]) -> float:
        if not ars:
            return 0.5
        average_clarity = sum(ar.clarity_score or 0 for ar in ars) / len(ars)
        score = average_clarity * 0.4
        measurable = sum(1 for ar in ars if _MEASURABLE.search(ar.text))
        score += measurable / len(ars) * 0.3
        if any(_METRIC.search(ar.text) for ar in ars):
            score += 0.3
        return _bounded(score)

    def _completeness(
        self,
        feature: FeatureCandidate,
        ars: Sequence[AtomicRequirement],
        questions: Sequence[ClarificationQuestion],
    ) -> float:
        score = 1.0
        score -= sum(1 for q in questions if not q.answer) * 0.1
        text = " ".join([feature.description, *(ar.text for ar in ars)])
        score -= len(_TBD.findall(text)) * 0.15
        short = sum(1 for ar in ars if len(ar.text.split(" ")) < 5)
        score -= short / max(1, len(ars)) * 0.2
        return _bounded(score)

    def _consistency(
        self,
        feature: FeatureCandidate,
        ars: Sequence[AtomicRequirement],
        dependencies: Sequence[str],
    ) -> float:
        score = 1.0
        if feature.title in dependencies:
            score -= 0.5
        text = " ".join(ar.text for ar in ars).lower()
        for pattern, weight in _CONTRADICTIONS:
            if pattern.search(text):
                score -= weight
        return _bounded(score)

    @staticmethod
    def _suggestions(components: Mapping[str, float]) -> list[str]:
        suggestions: list[str] = []
        if components["business_clarity"] < 0.7:
            suggestions.append("Add a clear user story format (As a [role], I want [feature] so that [benefit])")
            suggestions.append("Define the business value and expected outcomes")
        if components["technical_clarity"] < 0.7:
            suggestions.append("Specify integration points and data requirements")
            suggestions.append("Identify all system dependencies explicitly")
        if components["testability"] < 0.7:
            suggestions.append("Add measurable acceptance criteria")
            suggestions.append("Define specific success metrics such as response time or error rate")
        if components["completeness"] < 0.7:
            suggestions.append("Answer all blocking questions")
            suggestions.append("Replace TBD placeholders with actual values")
        if components["consistency"] < 0.9:
            suggestions.append("Review requirements for contradicting statements")
            suggestions.append("Verify all dependencies are correctly defined")
        return suggestions


__all__ = ["READINESS_THRESHOLD", "ReadinessService", "SCORING_WEIGHTS"]
