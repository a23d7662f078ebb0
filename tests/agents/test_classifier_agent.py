import pytest

from Entropy_decomp.adapters.testing import ScriptedAdapter
from Entropy_decomp.agents.classifier import ClassifierAgent, default_classifier_config
from Entropy_decomp.agents.execution_logger import InMemoryExecutionLogger
from Entropy_decomp.agents.models import AgentType
from Entropy_decomp.models import RequirementType

PRIMARY = "anthropic-claude-4-sonnet"


def test_default_config_targets_primary_with_fallback() -> None:
    config = default_classifier_config()

    assert config.type is AgentType.CLASSIFIER
    assert config.adapter_id == PRIMARY
    assert config.fallback_adapter_ids == ["openai-gpt-4o"]
    assert config.temperature == 0.3
    assert config.output_schema is not None


def test_default_config_accepts_overrides() -> None:
    assert default_classifier_config(max_retries=5).max_retries == 5


@pytest.mark.asyncio
async def test_classify_returns_typed_result(registry, classification_response, requirement_text) -> None:
    adapter = ScriptedAdapter(PRIMARY, [classification_response])
    registry.register(adapter)
    execution_logger = InMemoryExecutionLogger()
    agent = ClassifierAgent(registry, execution_logger=execution_logger)

    result = await agent.classify("req-1", requirement_text)

    assert result.requirement_id == "req-1"
    assert result.type is RequirementType.NEW_FEATURE
    assert result.confidence == 0.9
    assert result.suggested_decomposition is True
    assert result.indicators.scope_indicators == ["authentication", "reporting"]

    request = adapter.requests[0]
    assert requirement_text in request.messages[0].content
    assert request.temperature == 0.3
    assert request.max_tokens == 1024
    [record] = execution_logger.get_executions_by_agent_type(AgentType.CLASSIFIER)
    assert record.context.requirement_id == "req-1"


@pytest.mark.asyncio
async def test_classify_coerces_string_confidence(registry) -> None:
    registry.register(
        ScriptedAdapter(
            PRIMARY,
            ['{"type": "bug_fix", "confidence": "0.55", "reasoning": "Fix", "suggestedDecomposition": "false"}'],
        )
    )

    result = await ClassifierAgent(registry).classify("req-9", "The export button crashes")

    assert result.type is RequirementType.BUG_FIX
    assert result.confidence == 0.55
    assert result.suggested_decomposition is False
