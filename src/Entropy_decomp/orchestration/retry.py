"""Retry classification and timeout racing for pipeline stages."""

from __future__ import annotations

import asyncio
import errno
from collections.abc import Awaitable, Callable
from typing import TypeVar

from Entropy_decomp.utils.errors import error_code

from .errors import StageTimeoutError

T = TypeVar("T")

RETRYABLE_ERROR_CODES = frozenset(
    {"ECONNRESET", "ETIMEDOUT", "RATE_LIMIT", "SERVICE_UNAVAILABLE", "TIMEOUT"}
)

_RETRYABLE_MESSAGES = ("timeout", "rate limit")


def _os_error_code(exc: BaseException) -> str | None:
    if isinstance(exc, OSError) and exc.errno is not None:
        return errno.errorcode.get(exc.errno)
    return None


def is_retryable(exc: BaseException) -> bool:
    """Return whether a stage failure is transient and worth another attempt."""
    code = error_code(exc) or _os_error_code(exc)
    if code in RETRYABLE_ERROR_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RETRYABLE_MESSAGES)


async def run_with_timeout(stage: str, body: Callable[[], Awaitable[T]], timeout_ms: int) -> T:
    """Race ``body`` against ``timeout_ms``; the loser is cancelled."""
    try:
        return await asyncio.wait_for(body(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as exc:
        raise StageTimeoutError(stage, timeout_ms) from exc


__all__ = ["RETRYABLE_ERROR_CODES", "is_retryable", "run_with_timeout"]
