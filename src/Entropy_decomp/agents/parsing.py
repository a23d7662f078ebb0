"""Locate and decode the JSON payload inside a free-form model response."""

from __future__ import annotations

import re
from typing import Any

import orjson

from Entropy_decomp.utils.errors import FoundationError

_JSON_FENCE = re.compile(r"```json\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[\w-]*\s*\n?(.*?)```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


class OutputParseError(FoundationError):
    code = "PARSE_ERROR"


def extract_json(text: str) -> str:
    """Return the most likely JSON document embedded in ``text``.

    Search order: a fence tagged ``json``, any fence, the span opened by the
    first ``{`` or ``[`` and closed by the last matching bracket, and finally
    the stripped text.
    """
    for pattern in (_JSON_FENCE, _ANY_FENCE):
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    starts = [index for index in (text.find("{"), text.find("[")) if index >= 0]
    if starts:
        start = min(starts)
        end = text.rfind(_CLOSERS[text[start]])
        if end > start:
            return text[start : end + 1].strip()
    return text.strip()


def parse_json_response(text: str) -> Any:
    """Decode the JSON payload of a response, raising :class:`OutputParseError`."""
    candidate = extract_json(text)
    try:
        return orjson.loads(candidate)
    except orjson.JSONDecodeError as exc:
        raise OutputParseError(
            f"Failed to parse model output as JSON: {exc}",
            extra={"preview": candidate[:200]},
        ) from exc


__all__ = ["OutputParseError", "extract_json", "parse_json_response"]
