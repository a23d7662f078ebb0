"""Adapter for the Google Gemini ``generateContent`` API."""

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

_FINISH_REASONS = {"STOP": "stop", "MAX_TOKENS": "length", "SAFETY": "error", "RECITATION": "error"}

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _usage(metadata: dict[str, Any] | None) -> TokenUsage:
    metadata = metadata or {}
    return TokenUsage(
        input_tokens=int(metadata.get("promptTokenCount", 0)),
        output_tokens=int(metadata.get("candidatesTokenCount", 0)),
    )


def _candidate_text(body: dict[str, Any]) -> tuple[str, str | None]:
    candidates = body.get("candidates") or [{}]
    candidate = candidates[0]
    parts = candidate.get("content", {}).get("parts", [])
    return "".join(part.get("text", "") for part in parts), candidate.get("finishReason")


class GoogleAdapter(ModelAdapter):
    provider = ModelProvider.GOOGLE

    def _url(self, model: str, method: str) -> str:
        base = (self.config.base_url or DEFAULT_BASE_URL).rstrip("/")
        return f"{base}/models/{model}:{method}"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key(), "content-type": "application/json"}

    def _payload(self, request: CompletionRequest) -> dict[str, Any]:
        config: dict[str, Any] = {
            "temperature": request.temperature,
            "maxOutputTokens": request.max_tokens,
        }
        if request.stop:
            config["stopSequences"] = list(request.stop)
        if request.response_format == "json":
            config["responseMimeType"] = "application/json"
        payload: dict[str, Any] = {
            "contents": [
                {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
                for m in request.messages
                if m.role != "system"
            ],
            "generationConfig": config,
        }
        system = "\n\n".join(m.content for m in request.messages if m.role == "system")
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    async def _complete(self, request: CompletionRequest) -> CompletionResponse:
        model = request.model or self.model
        body = await self._post_json(
            self._url(model, "generateContent"), self._payload(request), self._headers()
        )
        text, finish = _candidate_text(body)
        return CompletionResponse(
            content=text,
            model=body.get("modelVersion", model),
            usage=_usage(body.get("usageMetadata")),
            finish_reason=_FINISH_REASONS.get(finish or "STOP", "stop"),
        )

    async def _stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        model = request.model or self.model
        usage: TokenUsage | None = None
        url = f"{self._url(model, 'streamGenerateContent')}?alt=sse"
        async for event in self._stream_events(url, self._payload(request), self._headers()):
            if event.get("usageMetadata"):
                usage = _usage(event["usageMetadata"])
            text, _ = _candidate_text(event)
            if text:
                yield StreamChunk(content=text)
        yield StreamChunk(content="", done=True, usage=usage)


__all__ = ["GoogleAdapter"]
