"""Adapter for the Anthropic Messages API."""

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

_STOP_REASONS = {"end_turn": "stop", "stop_sequence": "stop", "max_tokens": "length", "tool_use": "tool_use"}

DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"


class AnthropicAdapter(ModelAdapter):
    provider = ModelProvider.ANTHROPIC

    @property
    def _url(self) -> str:
        return f"{(self.config.base_url or DEFAULT_BASE_URL).rstrip('/')}/v1/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key(),
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def _payload(self, request: CompletionRequest, *, stream: bool = False) -> dict[str, Any]:
        system = "\n\n".join(m.content for m in request.messages if m.role == "system")
        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in request.messages if m.role != "system"
            ],
        }
        if system:
            payload["system"] = system
        if request.stop:
            payload["stop_sequences"] = list(request.stop)
        if stream:
            payload["stream"] = True
        return payload

    async def _complete(self, request: CompletionRequest) -> CompletionResponse:
        body = await self._post_json(self._url, self._payload(request), self._headers())
        text = "".join(
            block.get("text", "") for block in body.get("content", []) if block.get("type") == "text"
        )
        usage = body.get("usage", {})
        return CompletionResponse(
            content=text,
            model=body.get("model", request.model or self.model),
            usage=TokenUsage(
                input_tokens=int(usage.get("input_tokens", 0)),
                output_tokens=int(usage.get("output_tokens", 0)),
            ),
            finish_reason=_STOP_REASONS.get(body.get("stop_reason"), "stop"),
        )

    async def _stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        usage = TokenUsage()
        events = self._stream_events(self._url, self._payload(request, stream=True), self._headers())
        async for event in events:
            kind = event.get("type")
            if kind == "message_start":
                usage.input_tokens = int(event.get("message", {}).get("usage", {}).get("input_tokens", 0))
            elif kind == "content_block_delta":
                text = event.get("delta", {}).get("text")
                if text:
                    yield StreamChunk(content=text)
            elif kind == "message_delta":
                usage.output_tokens = int(event.get("usage", {}).get("output_tokens", 0))
            elif kind == "message_stop":
                yield StreamChunk(content="", done=True, usage=usage)
                return


__all__ = ["AnthropicAdapter"]
