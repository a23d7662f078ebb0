import asyncio

import pytest

from Entropy_decomp.adapters.errors import AuthenticationError, RateLimitError
from Entropy_decomp.orchestration.errors import (
    CancellationToken,
    PipelineCancelled,
    PipelineDataError,
    StageTimeoutError,
)
from Entropy_decomp.orchestration.retry import is_retryable, run_with_timeout
from Entropy_decomp.utils.errors import FoundationError


@pytest.mark.parametrize(
    "error",
    [
        RateLimitError(),
        StageTimeoutError("classifying", 100),
        FoundationError("upstream down", code="SERVICE_UNAVAILABLE"),
        ConnectionResetError(104, "Connection reset by peer"),
        TimeoutError(110, "Connection timed out"),
        RuntimeError("Request Timeout from gateway"),
        RuntimeError("rate limit reached for model"),
    ],
)
def test_transient_errors_are_retryable(error) -> None:
    assert is_retryable(error) is True


@pytest.mark.parametrize(
    "error",
    [
        AuthenticationError(),
        PipelineCancelled(),
        PipelineDataError("Requirement not found: x", code="REQUIREMENT_NOT_FOUND"),
        ValueError("bad input"),
    ],
)
def test_permanent_errors_are_not_retryable(error) -> None:
    assert is_retryable(error) is False


@pytest.mark.asyncio
async def test_run_with_timeout_returns_result() -> None:
    async def body():
        return 42

    assert await run_with_timeout("extracting", body, 1_000) == 42


@pytest.mark.asyncio
async def test_run_with_timeout_raises_stage_timeout() -> None:
    async def body():
        await asyncio.Event().wait()

    with pytest.raises(StageTimeoutError) as excinfo:
        await run_with_timeout("decomposing", body, 10)

    assert excinfo.value.code == "TIMEOUT"
    assert str(excinfo.value) == "Stage decomposing timeout after 10ms"


def test_cancellation_token_keeps_first_reason() -> None:
    token = CancellationToken()
    assert token.cancelled is False
    token.raise_if_cancelled()

    token.cancel("user request")
    token.cancel("shutdown")

    assert token.cancelled is True
    with pytest.raises(PipelineCancelled, match="user request"):
        token.raise_if_cancelled()
