import pytest

from Entropy_decomp.adapters.base import TokenUsage
from Entropy_decomp.agents.execution_logger import (
    InMemoryExecutionLogger,
    RepositoryExecutionLogger,
)
from Entropy_decomp.agents.models import (
    AgentInput,
    AgentOutput,
    AgentType,
    ExecutionContext,
    ExecutionRecord,
    QualityScore,
)


def _record(agent_type: AgentType = AgentType.CLASSIFIER, execution_id: str = "exec-1") -> ExecutionRecord:
    quality = QualityScore(overall=0.9, completeness=1.0, consistency=1.0, confidence=0.7)
    return ExecutionRecord(
        context=ExecutionContext(
            execution_id=execution_id,
            agent_id=f"{agent_type.value}-agent",
            agent_type=agent_type,
            project_id="project-1",
            requirement_id="req-1",
        ),
        input=AgentInput(type=agent_type, data={"requirement_text": "Export reports"}),
        output=AgentOutput(
            type=agent_type,
            data={"type": "epic"},
            quality=quality,
            usage=TokenUsage(input_tokens=120, output_tokens=40),
            model="claude-sonnet-4-5",
            latency_ms=250,
            adapter_id="anthropic-claude-4-sonnet",
        ),
        prompt="Classify: Export reports",
        cost_usd=0.00096,
    )


class RecordingRepository:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.started = []
        self.completed = []

    async def start_execution(self, start):
        if self.fail:
            raise RuntimeError("connection refused")
        self.started.append(start)
        return "row-1"

    async def complete_execution(self, execution_id, completion):
        self.completed.append((execution_id, completion))


@pytest.mark.asyncio
async def test_in_memory_logger_filters_by_agent_type() -> None:
    execution_logger = InMemoryExecutionLogger()
    await execution_logger.log(_record())
    await execution_logger.log(_record(AgentType.DECOMPOSER, "exec-2"))

    assert execution_logger.count == 2
    [decomposer] = execution_logger.get_executions_by_agent_type(AgentType.DECOMPOSER)
    assert decomposer.context.execution_id == "exec-2"

    snapshot = execution_logger.get_executions()
    execution_logger.clear()
    assert len(snapshot) == 2
    assert execution_logger.count == 0


@pytest.mark.asyncio
async def test_repository_logger_writes_start_then_completion() -> None:
    repository = RecordingRepository()

    await RepositoryExecutionLogger(repository).log(_record())

    [start] = repository.started
    assert start.execution_id == "exec-1"
    assert start.agent_type == "classifier"
    assert start.model == "claude-sonnet-4-5"
    assert start.input_data == {"requirement_text": "Export reports"}
    [(row_id, completion)] = repository.completed
    assert row_id == "row-1"
    assert (completion.input_tokens, completion.output_tokens) == (120, 40)
    assert completion.cost_usd == pytest.approx(0.00096)
    assert completion.quality_score == 0.9
    assert completion.response_metadata["adapter_id"] == "anthropic-claude-4-sonnet"


@pytest.mark.asyncio
async def test_repository_logger_swallows_persistence_failures() -> None:
    repository = RecordingRepository(fail=True)

    await RepositoryExecutionLogger(repository).log(_record())

    assert repository.completed == []
