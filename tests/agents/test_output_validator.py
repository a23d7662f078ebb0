import copy

import pytest

from Entropy_decomp.agents import validator as validator_module
from Entropy_decomp.agents.schemas import CLASSIFICATION_SCHEMA, DECOMPOSITION_SCHEMA
from Entropy_decomp.agents.validator import OutputValidationError, OutputValidator


def _classification(**overrides):
    payload = {
        "type": "new_feature",
        "confidence": 0.9,
        "reasoning": "New capability",
        "suggestedDecomposition": True,
    }
    payload.update(overrides)
    return payload


def test_conforming_value_is_valid() -> None:
    result = OutputValidator().validate(_classification(), CLASSIFICATION_SCHEMA)

    assert result.valid is True
    assert result.errors == []


def test_missing_required_field_reports_root_path() -> None:
    value = _classification()
    del value["reasoning"]

    result = OutputValidator().validate(value, CLASSIFICATION_SCHEMA)

    assert result.valid is False
    assert [(issue.path, issue.keyword) for issue in result.errors] == [("$", "required")]


def test_nested_violation_reports_json_pointer() -> None:
    value = {
        "themes": [{"id": "t1", "name": "Auth", "description": "d", "confidence": 1.5}],
        "atomicRequirements": [],
        "featureCandidates": [],
    }

    result = OutputValidator().validate(value, DECOMPOSITION_SCHEMA)

    assert not result.valid
    issue = result.errors[0]
    assert issue.path == "/themes/0/confidence"
    assert issue.keyword == "maximum"
    assert issue.params == {"maximum": 1}


def test_coercion_converts_numeric_and_boolean_strings() -> None:
    validator = OutputValidator(coerce_types=True)

    result = validator.validate(
        _classification(confidence="0.75", suggestedDecomposition="false"), CLASSIFICATION_SCHEMA
    )

    assert result.valid
    assert result.coerced["confidence"] == 0.75
    assert result.coerced["suggestedDecomposition"] is False


def test_coerce_never_mutates_input() -> None:
    value = _classification(confidence="0.5", indicators={"scopeIndicators": ["api"]})
    snapshot = copy.deepcopy(value)

    coerced = OutputValidator().coerce(value, CLASSIFICATION_SCHEMA)

    assert value == snapshot
    assert coerced["confidence"] == 0.5
    assert coerced is not value


@pytest.mark.parametrize("value", [{}, None, "text", [], {"type": "epic"}])
def test_can_coerce_returns_false_for_unrecoverable_values(value) -> None:
    assert OutputValidator().can_coerce(value, CLASSIFICATION_SCHEMA) is False


def test_can_coerce_accepts_recoverable_values() -> None:
    assert OutputValidator().can_coerce(_classification(confidence="1"), CLASSIFICATION_SCHEMA) is True


def test_validate_or_raise_lists_every_violation() -> None:
    with pytest.raises(OutputValidationError, match="Validation failed") as excinfo:
        OutputValidator().validate_or_raise({"invalid": True}, CLASSIFICATION_SCHEMA)

    assert excinfo.value.code == "VALIDATION_ERROR"
    assert len(excinfo.value.errors) == 4


def test_defaults_are_filled_when_enabled() -> None:
    schema = {
        "type": "object",
        "properties": {"priority": {"type": "integer", "default": 5}},
    }

    result = OutputValidator(use_defaults=True).validate({}, schema)

    assert result.coerced == {"priority": 5}


def test_compiled_validators_are_cached_per_schema() -> None:
    OutputValidator.clear_cache()
    validator = OutputValidator()

    validator.validate(_classification(), CLASSIFICATION_SCHEMA)
    validator.validate(_classification(), dict(CLASSIFICATION_SCHEMA))

    info = validator_module._compiled.cache_info()
    assert info.misses == 1
    assert info.hits == 1
