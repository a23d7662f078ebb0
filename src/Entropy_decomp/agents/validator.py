"""JSON Schema validation of structured agent output.

Key Responsibilities:
    - Compile ``Draft202012Validator`` instances once per distinct schema and
      cache them by the schema's canonical JSON serialisation
    - Report every violation as ``{path, message, keyword, params}``
    - Optionally coerce scalar mismatches (numeric strings, ``"true"``/``"false"``)
      and fill schema defaults before validating, mirroring what LLM output
      usually needs

Side Effects:
    - ``validate`` mutates its input only when the validator was constructed
      with ``coerce_types=True`` or ``use_defaults=True``; :meth:`OutputValidator.coerce`
      always works on a deep copy

Thread Safety:
    - The compiled-validator cache is an ``lru_cache`` and safe for concurrent use
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import structlog
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as SchemaViolation

from Entropy_decomp.utils.errors import FoundationError

logger = structlog.get_logger(__name__)

_NUMERIC = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?\s*$")


class OutputValidationError(FoundationError):
    """Structured output did not satisfy its schema."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: Sequence[ValidationIssue]) -> None:
        summary = "; ".join(f"{issue.path}: {issue.message}" for issue in errors)
        super().__init__(f"Validation failed: {summary}", status=422)
        self.errors = list(errors)


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    path: str
    message: str
    keyword: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    coerced: Any = None


def _schema_key(schema: Mapping[str, Any]) -> str:
    return json.dumps(schema, sort_keys=True, separators=(",", ":"))


@lru_cache(maxsize=256)
def _compiled(schema_key: str) -> Draft202012Validator:
    schema = json.loads(schema_key)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def _issue(error: SchemaViolation) -> ValidationIssue:
    path = "".join(f"/{part}" for part in error.absolute_path) or "$"
    return ValidationIssue(
        path=path,
        message=error.message,
        keyword=str(error.validator),
        params={str(error.validator): error.validator_value},
    )


# ==============================================================================
# COERCION
# ==============================================================================


def _matches(value: Any, type_name: str) -> bool:
    if type_name == "null":
        return value is None
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "integer":
        return isinstance(value, int) and not isinstance(value, bool) or (
            isinstance(value, float) and value.is_integer()
        )
    if type_name == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "array":
        return isinstance(value, list)
    if type_name == "object":
        return isinstance(value, dict)
    return False


_NO_COERCION = object()


def _coerce_to(value: Any, type_name: str) -> Any:
    if type_name in {"number", "integer"}:
        if isinstance(value, str) and _NUMERIC.match(value):
            number = float(value)
            if type_name == "integer":
                return int(number) if number.is_integer() else _NO_COERCION
            return int(number) if number.is_integer() and "." not in value and "e" not in value.lower() else number
        if isinstance(value, bool):
            return int(value)
        if value is None:
            return 0
    elif type_name == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        if value is None:
            return ""
    elif type_name == "boolean":
        if value in ("true", "false"):
            return value == "true"
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value in (0, 1):
            return bool(value)
        if value is None:
            return False
    elif type_name == "null":
        if value in ("", 0, False):
            return None
    return _NO_COERCION


def _coerce_scalar(value: Any, types: str | Sequence[str]) -> Any:
    names = [types] if isinstance(types, str) else list(types)
    if any(_matches(value, name) for name in names):
        return value
    if isinstance(value, (dict, list)):
        return value
    for name in names:
        candidate = _coerce_to(value, name)
        if candidate is not _NO_COERCION:
            return candidate
    return value


def _apply(value: Any, schema: Any, *, coerce_types: bool, use_defaults: bool) -> Any:
    if not isinstance(schema, Mapping):
        return value
    if coerce_types and "type" in schema:
        value = _coerce_scalar(value, schema["type"])
    if isinstance(value, dict):
        for key, subschema in (schema.get("properties") or {}).items():
            if key in value:
                value[key] = _apply(value[key], subschema, coerce_types=coerce_types, use_defaults=use_defaults)
            elif use_defaults and isinstance(subschema, Mapping) and "default" in subschema:
                value[key] = copy.deepcopy(subschema["default"])
    elif isinstance(value, list) and isinstance(schema.get("items"), Mapping):
        for index, item in enumerate(value):
            value[index] = _apply(item, schema["items"], coerce_types=coerce_types, use_defaults=use_defaults)
    return value


# ==============================================================================
# VALIDATOR
# ==============================================================================


class OutputValidator:
    """Validate values against JSON schemas with cached compiled validators."""

    def __init__(self, *, coerce_types: bool = False, use_defaults: bool = False) -> None:
        self.coerce_types = coerce_types
        self.use_defaults = use_defaults

    def _run(self, value: Any, schema: Mapping[str, Any], *, coerce_types: bool, use_defaults: bool) -> ValidationResult:
        validator = _compiled(_schema_key(schema))
        mutated = coerce_types or use_defaults
        if mutated:
            value = _apply(value, schema, coerce_types=coerce_types, use_defaults=use_defaults)
        errors = [_issue(error) for error in validator.iter_errors(value)]
        return ValidationResult(valid=not errors, errors=errors, coerced=value if mutated else None)

    def validate(self, value: Any, schema: Mapping[str, Any]) -> ValidationResult:
        return self._run(value, schema, coerce_types=self.coerce_types, use_defaults=self.use_defaults)

    def validate_or_raise(self, value: Any, schema: Mapping[str, Any]) -> Any:
        """Validate ``value`` and return it (coerced when enabled).

        Raises:
            OutputValidationError: Listing every ``path: message`` pair.
        """
        result = self.validate(value, schema)
        if not result.valid:
            logger.debug("agents.validator.invalid", errors=len(result.errors))
            raise OutputValidationError(result.errors)
        return result.coerced if result.coerced is not None else value

    def coerce(self, value: Any, schema: Mapping[str, Any]) -> Any:
        clone = copy.deepcopy(value)
        result = self._run(clone, schema, coerce_types=True, use_defaults=self.use_defaults)
        return result.coerced

    def can_coerce(self, value: Any, schema: Mapping[str, Any]) -> bool:
        try:
            coerced = self.coerce(value, schema)
            return self._run(coerced, schema, coerce_types=False, use_defaults=False).valid
        except Exception:
            return False

    @staticmethod
    def clear_cache() -> None:
        _compiled.cache_clear()


__all__ = [
    "OutputValidationError",
    "OutputValidator",
    "ValidationIssue",
    "ValidationResult",
]
