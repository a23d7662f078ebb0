"""Problem detail helpers and the base exception for the decomposition engine.

Key Responsibilities:
    - Provide RFC 7807 style data structures so callers can translate failures
      into API responses without knowing the raising module
    - Supply a base exception carrying a machine readable ``code`` and a
      ``retryable`` flag consulted by the orchestrator's stage retry policy

Collaborators:
    - Upstream: Adapters, agents and orchestration raise subclasses of
      :class:`FoundationError`
    - Downstream: :mod:`Entropy_decomp.orchestration.retry` classifies errors
      by ``code``; host services serialise :class:`ProblemDetail`

Side Effects:
    - None; helpers are pure data containers
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

__all__ = ["FoundationError", "ProblemDetail", "error_code"]


@dataclass(slots=True)
class ProblemDetail:
    """Lightweight problem details object compliant with RFC 7807."""

    title: str
    status: int
    detail: str | None = None
    type: str = "about:blank"
    instance: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def model_dump(self) -> dict[str, Any]:
        """Return a dictionary representation with optional fields dropped."""
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        if not payload.get("extra"):
            payload.pop("extra", None)
        return payload


class FoundationError(RuntimeError):
    """Base exception that carries an error code and a :class:`ProblemDetail`."""

    code: str = "UNKNOWN_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool | None = None,
        status: int = 500,
        detail: str | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialise the exception with structured problem detail attributes.

        Args:
            message: Human readable error summary.
            code: Machine readable error code, defaults to the class level code.
            retryable: Whether retrying the failed operation may succeed.
            status: HTTP status code associated with the problem.
            detail: Optional detailed description of the failure.
            extra: Additional attributes included in the serialized payload.
        """
        super().__init__(message)
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.problem = ProblemDetail(
            title=message,
            status=status,
            detail=detail,
            type=f"urn:entropy:error:{self.code.lower()}",
            extra=extra or {},
        )

    @property
    def message(self) -> str:
        return str(self)


def error_code(exc: BaseException) -> str | None:
    """Return the ``code`` attribute of an exception when it carries one."""
    code = getattr(exc, "code", None)
    return code if isinstance(code, str) else None
