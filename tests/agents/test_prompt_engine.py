import pytest
from jinja2 import UndefinedError

from Entropy_decomp.agents.prompts import (
    CLASSIFIER_TEMPLATE_KEY,
    DECOMPOSER_TEMPLATE_KEY,
    InMemoryTemplateSource,
    PromptEngine,
    TemplateNotFoundError,
)


def test_render_substitutes_variables_and_filters() -> None:
    engine = PromptEngine()

    rendered = engine.render(
        "Themes:\n{{ themes | bullets }}\nSteps:\n{{ steps | numbered }}\n{{ body | truncate_text(5) }}",
        {"themes": ["Auth", "Reports"], "steps": ["parse", "store"], "body": "abcdefgh"},
    )

    assert "- Auth\n- Reports" in rendered
    assert "1. parse\n2. store" in rendered
    assert "abcde..." in rendered


def test_missing_variable_fails_loudly() -> None:
    with pytest.raises(UndefinedError):
        PromptEngine().render("Hello {{ name }}", {})


def test_default_templates_render() -> None:
    engine = PromptEngine()

    classifier = engine.load_and_render(CLASSIFIER_TEMPLATE_KEY, {"requirement": "Export CSV"})
    decomposer = engine.load_and_render(
        DECOMPOSER_TEMPLATE_KEY,
        {
            "requirement": "Export CSV",
            "requirement_type": "new_feature",
            "chunk_index": 1,
            "total_chunks": 3,
            "previous_themes": ["Reporting"],
        },
    )

    assert "Export CSV" in classifier
    assert "chunk 2 of 3" in decomposer
    assert "- Reporting" in decomposer


def test_decomposer_template_omits_chunk_context_for_single_pass() -> None:
    rendered = PromptEngine().load_and_render(
        DECOMPOSER_TEMPLATE_KEY,
        {
            "requirement": "Export CSV",
            "requirement_type": "epic",
            "chunk_index": None,
            "total_chunks": 1,
            "previous_themes": [],
        },
    )

    assert "Processing Context" not in rendered


def test_versioned_templates_fall_back_to_latest() -> None:
    source = InMemoryTemplateSource({"greeting": "Hi {{ name }}"})
    source.set("greeting", "Hello {{ name }}", version="2.0.0")
    engine = PromptEngine(source)

    assert engine.load_and_render("greeting", {"name": "Ada"}, version="2.0.0") == "Hello Ada"
    assert engine.load_and_render("greeting", {"name": "Ada"}, version="9.9.9") == "Hi Ada"


def test_unknown_template_key_raises() -> None:
    with pytest.raises(TemplateNotFoundError):
        PromptEngine(InMemoryTemplateSource()).load("missing")


def test_validate_reports_missing_required_variables() -> None:
    result = PromptEngine().validate("{{ requirement }} {{ extra }}", ["requirement", "requirement_type"])

    assert result.valid is False
    assert result.errors == ["Required variable not found in template: requirement_type"]
    assert result.variables == ["extra", "requirement"]
