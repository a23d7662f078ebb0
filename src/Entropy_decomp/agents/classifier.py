"""Requirement type classification agent."""

from __future__ import annotations

import structlog

from Entropy_decomp.adapters.registry import AdapterRegistry
from Entropy_decomp.models import ClassificationResult

from .execution_logger import ExecutionLogger
from .executor import AgentBehavior, AgentExecutor, AgentHooks
from .models import AgentConfig, AgentContext, AgentInput, AgentOutput, AgentType
from .parsing import parse_json_response
from .prompts import CLASSIFIER_TEMPLATE_KEY, PromptEngine
from .quality import QualityScorer
from .schemas import CLASSIFICATION_SCHEMA
from .validator import OutputValidator

logger = structlog.get_logger(__name__)


def default_classifier_config(**overrides: object) -> AgentConfig:
    values: dict[str, object] = {
        "id": "classifier-agent",
        "type": AgentType.CLASSIFIER,
        "adapter_id": "anthropic-claude-4-sonnet",
        "fallback_adapter_ids": ["openai-gpt-4o"],
        "max_retries": 3,
        "timeout_ms": 30_000,
        "prompt_template_key": CLASSIFIER_TEMPLATE_KEY,
        "temperature": 0.3,
        "max_tokens": 1024,
        "output_schema": CLASSIFICATION_SCHEMA,
    }
    values.update(overrides)
    return AgentConfig.model_validate(values)


class ClassifierAgent:
    """Classifies a requirement as new feature, enhancement, epic or bug fix."""

    def __init__(
        self,
        registry: AdapterRegistry,
        *,
        config: AgentConfig | None = None,
        prompts: PromptEngine | None = None,
        validator: OutputValidator | None = None,
        scorer: QualityScorer | None = None,
        execution_logger: ExecutionLogger | None = None,
        hooks: AgentHooks | None = None,
    ) -> None:
        self.config = config or default_classifier_config()
        self.prompts = prompts or PromptEngine()
        self.executor = AgentExecutor(
            self.config,
            registry,
            validator=validator,
            scorer=scorer,
            execution_logger=execution_logger,
            hooks=hooks,
        )
        self.behavior = AgentBehavior(build_prompt=self.build_prompt, parse_output=parse_json_response)

    def build_prompt(self, agent_input: AgentInput) -> str:
        return self.prompts.load_and_render(
            self.config.prompt_template_key,
            {"requirement": agent_input.data["requirement_text"]},
        )

    async def execute(self, agent_input: AgentInput) -> AgentOutput:
        return await self.executor.execute(agent_input, self.behavior)

    async def classify(
        self,
        requirement_id: str,
        requirement_text: str,
        *,
        context: AgentContext | None = None,
    ) -> ClassificationResult:
        output = await self.execute(
            AgentInput(
                type=AgentType.CLASSIFIER,
                data={"requirement_id": requirement_id, "requirement_text": requirement_text},
                context=context or AgentContext(requirement_id=requirement_id),
            )
        )
        result = ClassificationResult.model_validate({**output.data, "requirementId": requirement_id})
        logger.info(
            "agents.classifier.classified",
            requirement_id=requirement_id,
            type=result.type.value,
            confidence=result.confidence,
        )
        return result


__all__ = ["ClassifierAgent", "default_classifier_config"]
