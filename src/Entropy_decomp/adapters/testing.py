"""Utilities to help test code that depends on model adapters."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable

from .base import (
    AdapterConfig,
    CompletionRequest,
    CompletionResponse,
    ModelAdapter,
    ModelProvider,
    StreamChunk,
    TokenUsage,
)

Scripted = str | BaseException | CompletionResponse


class ScriptedAdapter(ModelAdapter):
    """Adapter replaying a fixed script of responses without network access.

    Each call consumes the next scripted item; the last item repeats once the
    script is exhausted. Exceptions in the script are raised from the call.
    """

    def __init__(
        self,
        adapter_id: str = "scripted",
        script: Iterable[Scripted] = ("{}",),
        *,
        model: str = "scripted-model",
        provider: ModelProvider = ModelProvider.ANTHROPIC,
        max_retries: int = 1,
        healthy: bool | BaseException = True,
    ) -> None:
        self.config = AdapterConfig(
            id=adapter_id, provider=provider, model=model, max_retries=max_retries
        )
        self.provider = provider
        self._client = None  # type: ignore[assignment]
        self._owns_client = False
        self._script = list(script)
        self._healthy = healthy
        self.requests: list[CompletionRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _next(self) -> Scripted:
        if len(self._script) > 1:
            return self._script.pop(0)
        return self._script[0]

    async def _complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        item = self._next()
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, CompletionResponse):
            return item
        return CompletionResponse(
            content=item,
            model=self.model,
            usage=TokenUsage(
                input_tokens=self.count_tokens(request.messages[-1].content),
                output_tokens=self.count_tokens(item),
            ),
        )

    async def _stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        response = await self._complete(request)
        yield StreamChunk(content=response.content)
        yield StreamChunk(content="", done=True, usage=response.usage)

    async def health_check(self) -> bool:
        if isinstance(self._healthy, BaseException):
            raise self._healthy
        return self._healthy


__all__ = ["ScriptedAdapter"]
