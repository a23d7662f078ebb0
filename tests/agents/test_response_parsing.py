import pytest

from Entropy_decomp.agents.parsing import OutputParseError, extract_json, parse_json_response


def test_json_fence_is_preferred() -> None:
    text = 'Here you go:\n```json\n{"a": 1}\n```\nand a stray {"b": 2}'

    assert parse_json_response(text) == {"a": 1}


def test_untagged_fence_is_used() -> None:
    assert extract_json('```\n{"a": [1, 2]}\n```') == '{"a": [1, 2]}'


def test_bare_object_inside_prose() -> None:
    assert parse_json_response('Result: {"type": "epic", "nested": {"x": 1}} done') == {
        "type": "epic",
        "nested": {"x": 1},
    }


def test_bare_array() -> None:
    assert parse_json_response("values: [1, 2, 3]") == [1, 2, 3]


def test_bare_array_of_objects_inside_prose() -> None:
    text = 'Here you go: [{"id": "a"}, {"id": "b"}]'

    assert extract_json(text) == '[{"id": "a"}, {"id": "b"}]'
    assert parse_json_response(text) == [{"id": "a"}, {"id": "b"}]


def test_first_opening_bracket_wins() -> None:
    assert parse_json_response('Result: {"items": [1, 2]} as requested') == {"items": [1, 2]}


def test_unparseable_text_raises_parse_error() -> None:
    with pytest.raises(OutputParseError) as excinfo:
        parse_json_response("I could not decide.")

    assert excinfo.value.code == "PARSE_ERROR"
    assert excinfo.value.retryable is False
    assert excinfo.value.problem.extra["preview"] == "I could not decide."
