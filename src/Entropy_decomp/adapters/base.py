"""Provider-neutral model adapter contract and shared HTTP plumbing.

Key Responsibilities:
    - Define the request/response value objects exchanged with LLM providers
    - Provide :class:`ModelAdapter`, the base class wrapping provider calls with
      a per-call timeout and tenacity retries for transient failures
    - Map provider HTTP status codes onto the :mod:`.errors` hierarchy
    - Estimate token counts and USD cost from per-model pricing tables

Collaborators:
    - Upstream: :class:`~Entropy_decomp.adapters.registry.AdapterRegistry`
      builds adapters through :class:`~Entropy_decomp.adapters.factory.AdapterFactory`
    - Downstream: ``httpx.AsyncClient`` talking to provider REST APIs

Thread Safety:
    - Adapters are safe for concurrent use from one event loop; the shared
      ``httpx.AsyncClient`` pools connections
"""

from __future__ import annotations

import asyncio
import math
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

import httpx
import orjson
import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from Entropy_decomp.utils.time import elapsed_ms

from .errors import (
    AdapterError,
    AdapterTimeoutError,
    AdapterUnavailableError,
    AuthenticationError,
    ModelNotFoundError,
    RateLimitError,
)

logger = structlog.get_logger(__name__)

_RETRYABLE_MARKERS = ("rate limit", "timeout", "503", "529")


class ModelProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


class AdapterConfig(BaseModel):
    """Static configuration for one provider handle."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    id: str
    provider: ModelProvider
    model: str
    api_key: SecretStr | None = None
    base_url: str | None = None
    max_retries: int = Field(default=3, ge=1)
    timeout_ms: int = Field(default=60_000, ge=1)


@dataclass(slots=True)
class Message:
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(slots=True)
class CompletionRequest:
    messages: list[Message]
    model: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7
    stop: Sequence[str] | None = None
    response_format: Literal["text", "json"] = "text"


@dataclass(slots=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class CompletionResponse:
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Literal["stop", "length", "tool_use", "error"] = "stop"
    latency_ms: int = 0
    adapter_id: str | None = None


@dataclass(slots=True)
class StreamChunk:
    content: str
    done: bool = False
    usage: TokenUsage | None = None


# USD per million tokens, (input, output); matched by longest model prefix.
PRICING: Mapping[ModelProvider, Mapping[str, tuple[float, float]]] = {
    ModelProvider.ANTHROPIC: {
        "claude-opus": (15.0, 75.0),
        "claude-sonnet": (3.0, 15.0),
        "claude-haiku": (0.25, 1.25),
    },
    ModelProvider.OPENAI: {
        "gpt-4o-mini": (0.15, 0.6),
        "gpt-4o": (2.5, 10.0),
        "gpt-4-turbo": (10.0, 30.0),
        "gpt-4": (30.0, 60.0),
        "gpt-3.5-turbo": (0.5, 1.5),
    },
    ModelProvider.GOOGLE: {
        "gemini-1.5-flash": (0.075, 0.3),
        "gemini-1.5-pro": (1.25, 5.0),
    },
}


def is_retryable_error(exc: BaseException) -> bool:
    """Return whether an adapter call failure is worth another attempt."""
    if isinstance(exc, AdapterError):
        return exc.retryable
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


class ModelAdapter(ABC):
    """Base class for provider adapters.

    Subclasses implement :meth:`_complete` and :meth:`_stream`; the public
    :meth:`complete` adds the timeout and retry policy from :class:`AdapterConfig`.
    """

    provider: ModelProvider
    retry_wait: wait_base = wait_exponential(multiplier=1, min=1, max=30)

    def __init__(self, config: AdapterConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_ms / 1000)
        self._owns_client = client is None

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def model(self) -> str:
        return self.config.model

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=self.retry_wait,
            retry=retry_if_exception(is_retryable_error),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                started = time.perf_counter()
                try:
                    response = await asyncio.wait_for(
                        self._complete(request), timeout=self.config.timeout_ms / 1000
                    )
                except asyncio.TimeoutError as exc:
                    raise AdapterTimeoutError(
                        f"Adapter {self.id} timed out after {self.config.timeout_ms}ms",
                        provider=self.provider.value,
                    ) from exc
                except httpx.TimeoutException as exc:
                    raise AdapterTimeoutError(str(exc) or "timeout", provider=self.provider.value) from exc
                except httpx.TransportError as exc:
                    raise AdapterUnavailableError(
                        f"Transport failure: {exc}", provider=self.provider.value
                    ) from exc
                response.latency_ms = elapsed_ms(started)
                response.adapter_id = self.id
                logger.debug(
                    "adapter.complete.success",
                    adapter_id=self.id,
                    model=response.model,
                    latency_ms=response.latency_ms,
                    attempt=attempt.retry_state.attempt_number,
                )
                return response
        raise RuntimeError("unreachable")  # pragma: no cover - tenacity exhausts attempts

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        return self._stream(request)

    def count_tokens(self, text: str) -> int:
        return math.ceil(len(text) / 4)

    def estimate_cost(self, usage: TokenUsage) -> float:
        table = PRICING.get(self.provider, {})
        matches = [prefix for prefix in table if self.model.startswith(prefix)]
        if not matches:
            return 0.0
        input_price, output_price = table[max(matches, key=len)]
        return (usage.input_tokens * input_price + usage.output_tokens * output_price) / 1_000_000

    async def health_check(self) -> bool:
        try:
            await self._complete(
                CompletionRequest(messages=[Message(role="user", content="ping")], max_tokens=5)
            )
        except Exception as exc:
            logger.warning("adapter.health_check.failed", adapter_id=self.id, error=str(exc))
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------
    @abstractmethod
    async def _complete(self, request: CompletionRequest) -> CompletionResponse:
        """Perform a single provider call without retries."""

    @abstractmethod
    def _stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Yield incremental completion chunks."""

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def _api_key(self) -> str:
        if self.config.api_key is None:
            raise AuthenticationError(
                f"No API key configured for adapter {self.id}", provider=self.provider.value
            )
        return self.config.api_key.get_secret_value()

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = _error_message(response)
        provider = self.provider.value
        if status in {401, 403}:
            raise AuthenticationError(detail, provider=provider)
        if status == 404:
            raise ModelNotFoundError(self.model, provider=provider)
        if status == 408:
            raise AdapterTimeoutError(detail, provider=provider)
        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"Rate limit exceeded: {detail}",
                provider=provider,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status >= 500:
            raise AdapterUnavailableError(
                f"Provider returned {status}: {detail}", status_code=status, provider=provider
            )
        raise AdapterError(f"Provider returned {status}: {detail}", status_code=status, provider=provider)

    async def _post_json(self, url: str, payload: Mapping[str, Any], headers: Mapping[str, str]) -> Any:
        response = await self._client.post(url, content=orjson.dumps(payload), headers=dict(headers))
        self._raise_for_status(response)
        return orjson.loads(response.content)

    async def _stream_events(
        self, url: str, payload: Mapping[str, Any], headers: Mapping[str, str]
    ) -> AsyncIterator[Any]:
        """Yield decoded ``data:`` payloads from a server-sent event stream."""
        async with self._client.stream(
            "POST", url, content=orjson.dumps(payload), headers=dict(headers)
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                self._raise_for_status(response)
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if not data or data == "[DONE]":
                    continue
                yield orjson.loads(data)


def _error_message(response: httpx.Response) -> str:
    try:
        body = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text or response.reason_phrase


__all__ = [
    "AdapterConfig",
    "CompletionRequest",
    "CompletionResponse",
    "Message",
    "ModelAdapter",
    "ModelProvider",
    "PRICING",
    "StreamChunk",
    "TokenUsage",
    "is_retryable_error",
]
