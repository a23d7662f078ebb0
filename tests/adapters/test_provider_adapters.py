import httpx
import orjson
import pytest
from tenacity import wait_none

from Entropy_decomp.adapters.anthropic import AnthropicAdapter
from Entropy_decomp.adapters.base import AdapterConfig, CompletionRequest, Message, TokenUsage
from Entropy_decomp.adapters.errors import (
    AdapterUnavailableError,
    AuthenticationError,
    ModelNotFoundError,
    RateLimitError,
)
from Entropy_decomp.adapters.google import GoogleAdapter
from Entropy_decomp.adapters.openai import OpenAIAdapter


def _client(handler, seen):
    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(record))


def _config(provider: str, model: str, **overrides) -> AdapterConfig:
    values = {"id": f"{provider}-test", "provider": provider, "model": model, "api_key": "sk-test", "max_retries": 1}
    values.update(overrides)
    return AdapterConfig(**values)


def _request(**overrides) -> CompletionRequest:
    values = {
        "messages": [Message(role="system", content="Be terse"), Message(role="user", content="Hi")],
        "max_tokens": 64,
        "temperature": 0.2,
    }
    values.update(overrides)
    return CompletionRequest(**values)


@pytest.mark.asyncio
async def test_anthropic_complete_maps_messages_and_usage() -> None:
    seen = []
    body = {
        "content": [{"type": "text", "text": "Hello"}, {"type": "text", "text": " there"}],
        "model": "claude-sonnet-4-5",
        "usage": {"input_tokens": 12, "output_tokens": 3},
        "stop_reason": "max_tokens",
    }
    adapter = AnthropicAdapter(
        _config("anthropic", "claude-sonnet-4-5"), client=_client(lambda r: httpx.Response(200, json=body), seen)
    )

    response = await adapter.complete(_request(stop=["END"]))

    assert response.content == "Hello there"
    assert response.usage.total_tokens == 15
    assert response.finish_reason == "length"
    assert response.adapter_id == "anthropic-test"
    [request] = seen
    assert request.url == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    payload = orjson.loads(request.content)
    assert payload["system"] == "Be terse"
    assert payload["messages"] == [{"role": "user", "content": "Hi"}]
    assert payload["stop_sequences"] == ["END"]


@pytest.mark.asyncio
async def test_openai_complete_requests_json_mode() -> None:
    seen = []
    body = {
        "model": "gpt-4o-2024-08-06",
        "choices": [{"message": {"content": '{"ok": true}'}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 20, "completion_tokens": 5},
    }
    adapter = OpenAIAdapter(
        _config("openai", "gpt-4o", base_url="https://proxy.local/v1/"),
        client=_client(lambda r: httpx.Response(200, json=body), seen),
    )

    response = await adapter.complete(_request(response_format="json"))

    assert response.content == '{"ok": true}'
    assert response.model == "gpt-4o-2024-08-06"
    assert response.usage == TokenUsage(input_tokens=20, output_tokens=5)
    [request] = seen
    assert request.url == "https://proxy.local/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    payload = orjson.loads(request.content)
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["messages"][0] == {"role": "system", "content": "Be terse"}


@pytest.mark.asyncio
async def test_google_complete_uses_generate_content() -> None:
    seen = []
    body = {
        "candidates": [{"content": {"parts": [{"text": "Hola"}]}, "finishReason": "STOP"}],
        "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 2},
    }
    adapter = GoogleAdapter(
        _config("google", "gemini-1.5-pro"), client=_client(lambda r: httpx.Response(200, json=body), seen)
    )

    response = await adapter.complete(_request())

    assert response.content == "Hola"
    assert response.model == "gemini-1.5-pro"
    assert response.usage.output_tokens == 2
    [request] = seen
    assert request.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
    assert request.headers["x-goog-api-key"] == "sk-test"
    payload = orjson.loads(request.content)
    assert payload["systemInstruction"] == {"parts": [{"text": "Be terse"}]}
    assert payload["contents"] == [{"role": "user", "parts": [{"text": "Hi"}]}]
    assert payload["generationConfig"]["maxOutputTokens"] == 64


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error_type"),
    [(401, AuthenticationError), (404, ModelNotFoundError), (429, RateLimitError), (500, AdapterUnavailableError)],
)
async def test_http_errors_map_to_adapter_errors(status, error_type) -> None:
    response = httpx.Response(status, json={"error": {"message": "nope"}}, headers={"retry-after": "7"})
    adapter = OpenAIAdapter(_config("openai", "gpt-4o"), client=_client(lambda r: response, []))

    with pytest.raises(error_type) as excinfo:
        await adapter.complete(_request())

    if status == 429:
        assert excinfo.value.retry_after == 7.0
    assert excinfo.value.provider == "openai"


@pytest.mark.asyncio
async def test_transient_failures_are_retried_within_adapter() -> None:
    responses = [
        httpx.Response(503, text="overloaded"),
        httpx.Response(200, json={"content": [{"type": "text", "text": "ok"}], "usage": {}}),
    ]
    seen = []
    adapter = AnthropicAdapter(
        _config("anthropic", "claude-sonnet-4-5", max_retries=2),
        client=_client(lambda r: responses.pop(0), seen),
    )
    adapter.retry_wait = wait_none()

    response = await adapter.complete(_request())

    assert response.content == "ok"
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_missing_api_key_fails_without_request() -> None:
    seen = []
    adapter = AnthropicAdapter(
        _config("anthropic", "claude-sonnet-4-5", api_key=None), client=_client(lambda r: httpx.Response(200), seen)
    )

    with pytest.raises(AuthenticationError, match="No API key configured"):
        await adapter.complete(_request())
    assert seen == []


@pytest.mark.asyncio
async def test_anthropic_stream_yields_deltas_and_usage() -> None:
    events = [
        {"type": "message_start", "message": {"usage": {"input_tokens": 5}}},
        {"type": "content_block_delta", "delta": {"text": "Hel"}},
        {"type": "content_block_delta", "delta": {"text": "lo"}},
        {"type": "message_delta", "usage": {"output_tokens": 2}},
        {"type": "message_stop"},
    ]
    stream = "".join(f"event: x\ndata: {orjson.dumps(event).decode()}\n\n" for event in events)
    adapter = AnthropicAdapter(
        _config("anthropic", "claude-sonnet-4-5"),
        client=_client(
            lambda r: httpx.Response(200, content=stream.encode(), headers={"content-type": "text/event-stream"}),
            [],
        ),
    )

    chunks = [chunk async for chunk in adapter.stream(_request())]

    assert [chunk.content for chunk in chunks] == ["Hel", "lo", ""]
    assert chunks[-1].done is True
    assert chunks[-1].usage == TokenUsage(input_tokens=5, output_tokens=2)


def test_cost_estimate_uses_longest_model_prefix() -> None:
    adapter = OpenAIAdapter(_config("openai", "gpt-4o-mini"), client=httpx.AsyncClient())

    assert adapter.estimate_cost(TokenUsage(input_tokens=1_000_000, output_tokens=1_000_000)) == pytest.approx(0.75)


def test_count_tokens_approximates_four_chars_per_token() -> None:
    adapter = AnthropicAdapter(_config("anthropic", "claude-sonnet-4-5"), client=httpx.AsyncClient())

    assert adapter.count_tokens("abcdefghi") == 3
