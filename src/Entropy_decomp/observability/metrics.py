"""Prometheus metrics for pipeline stages, agents and adapters.

Key Responsibilities:
    - Define counters and histograms for stage outcomes, stage retries, agent
      executions and adapter failures
    - Expose small recording helpers so call-sites stay free of label plumbing

Thread Safety:
    - Thread-safe: Prometheus client metric operations are atomic
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

PIPELINE_STAGE_DURATION_SECONDS = Histogram(
    "entropy_pipeline_stage_duration_seconds",
    "Duration of decomposition pipeline stages",
    ["stage", "outcome"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

PIPELINE_STAGE_RETRIES_TOTAL = Counter(
    "entropy_pipeline_stage_retries_total",
    "Retryable stage failures observed by the orchestrator",
    ["stage", "code"],
)

PIPELINE_RUNS_TOTAL = Counter(
    "entropy_pipeline_runs_total",
    "Completed pipeline runs by terminal stage",
    ["stage"],
)

AGENT_EXECUTIONS_TOTAL = Counter(
    "entropy_agent_executions_total",
    "Agent executions by agent type and outcome",
    ["agent_type", "outcome"],
)

AGENT_LATENCY_SECONDS = Histogram(
    "entropy_agent_latency_seconds",
    "End-to-end latency of agent executions",
    ["agent_type"],
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

AGENT_TOKENS_TOTAL = Counter(
    "entropy_agent_tokens_total",
    "Tokens consumed by agent executions",
    ["agent_type", "direction"],
)

ADAPTER_FAILURES_TOTAL = Counter(
    "entropy_adapter_failures_total",
    "Failed completion attempts by adapter and error code",
    ["adapter_id", "code"],
)

ADAPTER_CIRCUIT_STATE = Gauge(
    "entropy_adapter_circuit_state",
    "Circuit breaker state per adapter (0=closed, 1=half_open, 2=open)",
    ["adapter_id"],
)

_CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def record_stage(stage: str, outcome: str, duration_seconds: float) -> None:
    PIPELINE_STAGE_DURATION_SECONDS.labels(stage=stage, outcome=outcome).observe(duration_seconds)


def record_stage_retry(stage: str, code: str) -> None:
    PIPELINE_STAGE_RETRIES_TOTAL.labels(stage=stage, code=code).inc()


def record_pipeline_run(stage: str) -> None:
    PIPELINE_RUNS_TOTAL.labels(stage=stage).inc()


def record_agent_execution(
    agent_type: str,
    outcome: str,
    duration_seconds: float,
    *,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> None:
    AGENT_EXECUTIONS_TOTAL.labels(agent_type=agent_type, outcome=outcome).inc()
    AGENT_LATENCY_SECONDS.labels(agent_type=agent_type).observe(duration_seconds)
    if input_tokens:
        AGENT_TOKENS_TOTAL.labels(agent_type=agent_type, direction="input").inc(input_tokens)
    if output_tokens:
        AGENT_TOKENS_TOTAL.labels(agent_type=agent_type, direction="output").inc(output_tokens)


def record_adapter_failure(adapter_id: str, code: str) -> None:
    ADAPTER_FAILURES_TOTAL.labels(adapter_id=adapter_id, code=code).inc()


def set_adapter_circuit_state(adapter_id: str, state: str) -> None:
    ADAPTER_CIRCUIT_STATE.labels(adapter_id=adapter_id).set(_CIRCUIT_STATE_VALUES.get(state, 0))


__all__ = [
    "record_adapter_failure",
    "record_agent_execution",
    "record_pipeline_run",
    "record_stage",
    "record_stage_retry",
    "set_adapter_circuit_state",
]
