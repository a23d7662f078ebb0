"""Adapter that tries an ordered list of adapters behind circuit breakers."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import structlog

from Entropy_decomp.observability.metrics import record_adapter_failure

from .base import CompletionRequest, CompletionResponse, ModelAdapter, StreamChunk, TokenUsage
from .errors import AdapterChainExhaustedError
from .registry import AdapterRegistry
from .resilience import CircuitBreaker

logger = structlog.get_logger(__name__)


class FallbackAdapter(ModelAdapter):
    """Completes against the first healthy adapter in ``adapters``.

    Adapters whose circuit is open are skipped. The request model is cleared
    before each hand-off so every adapter uses its own configured model.
    """

    def __init__(
        self,
        adapters: Sequence[ModelAdapter],
        *,
        failure_threshold: int = 3,
        reset_timeout_seconds: float = 30.0,
        half_open_max_calls: int = 1,
    ) -> None:
        if not adapters:
            raise ValueError("FallbackAdapter requires at least one adapter")
        primary = adapters[0]
        self.config = primary.config
        self.provider = primary.provider
        self._client = None  # type: ignore[assignment]
        self._owns_client = False
        self._adapters = list(adapters)
        self._breakers = {
            adapter.id: CircuitBreaker(
                adapter.id,
                failure_threshold=failure_threshold,
                reset_timeout_seconds=reset_timeout_seconds,
                half_open_max_calls=half_open_max_calls,
            )
            for adapter in self._adapters
        }

    @classmethod
    def from_registry(cls, registry: AdapterRegistry, adapter_id: str, **kwargs: float) -> FallbackAdapter:
        chain = [adapter_id, *registry.get_fallback_chain(adapter_id)]
        return cls([registry.get(item) for item in chain], **kwargs)  # type: ignore[arg-type]

    @property
    def adapters(self) -> list[ModelAdapter]:
        return list(self._adapters)

    def breaker(self, adapter_id: str) -> CircuitBreaker:
        return self._breakers[adapter_id]

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        errors: list[BaseException] = []
        for adapter in self._adapters:
            breaker = self._breakers[adapter.id]
            if not breaker.allows_call():
                logger.debug("adapters.fallback.skipped", adapter_id=adapter.id, state=breaker.state.value)
                continue
            try:
                breaker.before_call()
                response = await adapter.complete(_for_adapter(request, adapter, self))
            except Exception as exc:
                breaker.record_failure()
                errors.append(exc)
                record_adapter_failure(adapter.id, getattr(exc, "code", type(exc).__name__))
                logger.warning("adapters.fallback.failed", adapter_id=adapter.id, error=str(exc))
                continue
            breaker.record_success()
            return response
        raise AdapterChainExhaustedError(
            f"All adapters failed: {'; '.join(str(error) for error in errors) or 'all circuits open'}",
            errors,
        )

    async def _complete(self, request: CompletionRequest) -> CompletionResponse:
        return await self.complete(request)

    async def _stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        for adapter in self._adapters:
            if self._breakers[adapter.id].allows_call():
                async for chunk in adapter.stream(_for_adapter(request, adapter, self)):
                    yield chunk
                return
        yield StreamChunk(content="", done=True, usage=TokenUsage())

    def estimate_cost(self, usage: TokenUsage) -> float:
        return self._adapters[0].estimate_cost(usage)

    async def health_check(self) -> bool:
        for adapter in self._adapters:
            if await adapter.health_check():
                return True
        return False


def _for_adapter(request: CompletionRequest, adapter: ModelAdapter, owner: FallbackAdapter) -> CompletionRequest:
    if adapter is owner._adapters[0]:
        return request
    return CompletionRequest(
        messages=request.messages,
        model=None,
        max_tokens=request.max_tokens,
        temperature=request.temperature,
        stop=request.stop,
        response_format=request.response_format,
    )


__all__ = ["FallbackAdapter"]
