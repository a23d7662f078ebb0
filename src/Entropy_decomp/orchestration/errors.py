"""Errors raised by pipeline stage bodies and the stage wrapper."""

from __future__ import annotations

from Entropy_decomp.utils.errors import FoundationError


class PipelineCancelled(FoundationError):
    """Sentinel that ends a run in the ``cancelled`` stage instead of ``failed``."""

    code = "CANCELLED"

    def __init__(self, message: str = "Pipeline cancelled") -> None:
        super().__init__(message, status=499)


class StageTimeoutError(FoundationError):
    code = "TIMEOUT"
    retryable = True

    def __init__(self, stage: str, timeout_ms: int) -> None:
        super().__init__(f"Stage {stage} timeout after {timeout_ms}ms", status=504)
        self.stage = stage
        self.timeout_ms = timeout_ms


class PipelineDataError(FoundationError):
    """A record or artefact a stage depends on is missing."""

    code = "PIPELINE_DATA_ERROR"

    def __init__(self, message: str, *, code: str) -> None:
        super().__init__(message, code=code, status=404)


class CancellationToken:
    """Out-of-band cancellation flag checked between pipeline stages."""

    def __init__(self) -> None:
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    def cancel(self, reason: str = "Pipeline cancelled") -> None:
        if self._reason is None:
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise PipelineCancelled(self._reason)


__all__ = ["CancellationToken", "PipelineCancelled", "PipelineDataError", "StageTimeoutError"]
