"""Utility modules shared by adapters, agents and orchestration."""

from .errors import FoundationError, ProblemDetail


__all__ = ["FoundationError", "ProblemDetail"]
