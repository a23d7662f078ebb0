"""Timestamp helpers with strict UTC enforcement."""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def elapsed_ms(started: float) -> int:
    """Milliseconds elapsed since a ``time.perf_counter`` reading."""
    return int((time.perf_counter() - started) * 1000)


__all__ = ["elapsed_ms", "utc_now"]
