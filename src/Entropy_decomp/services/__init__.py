"""Domain services consumed by the orchestrator."""

from .readiness import ReadinessService


__all__ = ["ReadinessService"]
