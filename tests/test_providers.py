import asyncio
import json

import httpx
import pytest

from gateway.claude_provider import ClaudeProvider
from gateway.config import ProviderSettings
from gateway.deepseek_provider import DeepSeekProvider
from gateway.errors import ErrorKind, ProviderError
from gateway.openai_provider import OpenAIProvider

ANALYSIS_JSON = json.dumps(
    {
        "summary": "Deliveries are slipping.",
        "key_insights": ["3 late deliveries"],
        "next_actions": ["Call the customer"],
        "confidence_score": 0.7,
    }
)


def _settings(base_url: str, api_key: str = "secret") -> ProviderSettings:
    return ProviderSettings(api_key=api_key, model="model-x", base_url=base_url, timeout_s=5)


def test_claude_provider_parses_messages_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": "claude-test",
                "content": [{"type": "text", "text": ANALYSIS_JSON}],
                "usage": {"input_tokens": 10, "output_tokens": 20},
            },
        )

    provider = ClaudeProvider(_settings("https://claude.test/"), transport=httpx.MockTransport(handler))
    result = asyncio.run(provider.analyze({"orders": 3}, ["late"], "req-1"))

    assert seen["url"] == "https://claude.test/v1/messages"
    assert seen["headers"]["x-api-key"] == "secret"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["model"] == "model-x"
    assert seen["body"]["messages"][0]["role"] == "user"
    assert result.response.summary == "Deliveries are slipping."
    assert result.response.metadata.confidence_score == 0.7
    assert result.model_version == "claude-test"
    assert result.prompt_tokens == 10
    assert result.completion_tokens == 20


def test_claude_provider_maps_unauthorized():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "invalid x-api-key"}})

    provider = ClaudeProvider(_settings("https://claude.test"), transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.analyze({}, ["n"], "req-1"))

    assert excinfo.value.status == 401
    assert excinfo.value.retryable is False
    assert excinfo.value.message == "Claude error: invalid x-api-key"


def test_claude_provider_server_error_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(529, json={"error": {"message": "overloaded"}})

    provider = ClaudeProvider(_settings("https://claude.test"), transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.analyze({}, ["n"], "req-1"))

    assert excinfo.value.kind == ErrorKind.TRANSIENT_UPSTREAM


def test_claude_provider_timeout_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider = ClaudeProvider(_settings("https://claude.test"), transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.analyze({}, ["n"], "req-1"))

    assert excinfo.value.kind == ErrorKind.TIMEOUT
    assert excinfo.value.message == "Claude request timeout"


def test_missing_api_key_is_not_retryable():
    provider = OpenAIProvider(_settings("https://openai.test", api_key=""))

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.analyze({}, ["n"], "req-1"))

    assert excinfo.value.retryable is False
    assert excinfo.value.status is None
    assert "OPENAI_API_KEY" in excinfo.value.message


def test_openai_provider_calls_chat_completions():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(
            200,
            json={
                "model": "gpt-test",
                "choices": [{"message": {"role": "assistant", "content": ANALYSIS_JSON}}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 7},
            },
        )

    provider = OpenAIProvider(_settings("https://openai.test/v1"), transport=httpx.MockTransport(handler))
    result = asyncio.run(provider.analyze({"a": 1}, ["n"], "req-1"))

    assert seen["url"] == "https://openai.test/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"
    assert result.response.next_actions == ["Call the customer"]
    assert result.model_version == "gpt-test"


def test_deepseek_provider_uses_versioned_path_and_rate_limit():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(429, json={"message": "too many requests"})

    provider = DeepSeekProvider(_settings("https://deepseek.test"), transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.analyze({}, ["n"], "req-1"))

    assert seen["url"] == "https://deepseek.test/v1/chat/completions"
    assert excinfo.value.provider == "deepseek"
    assert excinfo.value.kind == ErrorKind.RATE_LIMITED
    assert excinfo.value.message == "DeepSeek error: too many requests"
