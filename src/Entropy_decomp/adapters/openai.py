"""Adapter for the OpenAI Chat Completions API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from .base import (
    CompletionRequest,
    CompletionResponse,
    ModelAdapter,
    ModelProvider,
    StreamChunk,
    TokenUsage,
)

_FINISH_REASONS = {"stop": "stop", "length": "length", "tool_calls": "tool_use", "content_filter": "error"}

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIAdapter(ModelAdapter):
    provider = ModelProvider.OPENAI

    @property
    def _url(self) -> str:
        return f"{(self.config.base_url or DEFAULT_BASE_URL).rstrip('/')}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {"authorization": f"Bearer {self._api_key()}", "content-type": "application/json"}

    def _payload(self, request: CompletionRequest, *, stream: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.stop:
            payload["stop"] = list(request.stop)
        if request.response_format == "json":
            payload["response_format"] = {"type": "json_object"}
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def _complete(self, request: CompletionRequest) -> CompletionResponse:
        body = await self._post_json(self._url, self._payload(request), self._headers())
        choice = (body.get("choices") or [{}])[0]
        usage = body.get("usage") or {}
        return CompletionResponse(
            content=choice.get("message", {}).get("content") or "",
            model=body.get("model", request.model or self.model),
            usage=TokenUsage(
                input_tokens=int(usage.get("prompt_tokens", 0)),
                output_tokens=int(usage.get("completion_tokens", 0)),
            ),
            finish_reason=_FINISH_REASONS.get(choice.get("finish_reason"), "stop"),
        )

    async def _stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        usage: TokenUsage | None = None
        events = self._stream_events(self._url, self._payload(request, stream=True), self._headers())
        async for event in events:
            if event.get("usage"):
                usage = TokenUsage(
                    input_tokens=int(event["usage"].get("prompt_tokens", 0)),
                    output_tokens=int(event["usage"].get("completion_tokens", 0)),
                )
            for choice in event.get("choices") or []:
                text = choice.get("delta", {}).get("content")
                if text:
                    yield StreamChunk(content=text)
        yield StreamChunk(content="", done=True, usage=usage)


__all__ = ["OpenAIAdapter"]
