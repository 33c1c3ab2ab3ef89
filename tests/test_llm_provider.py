from __future__ import annotations

import json

import httpx
import pytest

from mistake_analyzer.core.errors import ProviderError
from mistake_analyzer.core.llm_provider import GroqLLMProvider, NullLLMProvider, OllamaLLMProvider, get_llm_provider
from mistake_analyzer.core.logging import redact_secrets
from mistake_analyzer.core.resilience import CircuitBreaker, get_breaker, get_breakers_status
from mistake_analyzer.core.settings import settings


@pytest.fixture
def groq_key(monkeypatch):
    monkeypatch.setattr(settings, "groq_api_key", "gsk_test_key")


@pytest.mark.asyncio
async def test_groq_sends_system_and_user_messages(groq_key):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "  [1, 2]  "}}],
                "usage": {"prompt_tokens": 11, "completion_tokens": 3},
            },
        )

    provider = GroqLLMProvider(transport=httpx.MockTransport(handler))
    text, usage = await provider.generate("prompt body", system_prompt="system body")

    assert text == "[1, 2]"
    assert usage["prompt_tokens"] == 11
    body = json.loads(seen[0].content)
    assert body["messages"] == [
        {"role": "system", "content": "system body"},
        {"role": "user", "content": "prompt body"},
    ]
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 4000
    assert seen[0].headers["Authorization"] == "Bearer gsk_test_key"


@pytest.mark.asyncio
async def test_groq_without_key_makes_no_call(monkeypatch):
    monkeypatch.setattr(settings, "groq_api_key", "")

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    text, usage = await GroqLLMProvider(transport=httpx.MockTransport(handler)).generate("p")

    assert text is None
    assert usage["reason"] == "missing_api_key"


@pytest.mark.asyncio
async def test_groq_error_status_opens_breaker(groq_key):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={"error": "overloaded"})

    provider = GroqLLMProvider(role="question_generator", transport=httpx.MockTransport(handler))
    breaker = get_breaker(f"llm:groq:{provider.model_name}:question_generator")

    for _ in range(breaker.failure_threshold):
        with pytest.raises(ProviderError, match="Groq API error: 503"):
            await provider.generate("p")
    with pytest.raises(ProviderError, match="unavailable after repeated failures"):
        await provider.generate("p")

    assert len(calls) == breaker.failure_threshold
    assert get_breakers_status()[breaker.name]["state"] == "open"


@pytest.mark.asyncio
async def test_groq_empty_content(groq_key):
    provider = GroqLLMProvider(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"choices": []})))
    text, usage = await provider.generate("p")
    assert text is None
    assert usage["reason"] == "no_content"


@pytest.mark.asyncio
async def test_ollama_posts_to_chat_endpoint():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"message": {"content": "[]"}})

    provider = OllamaLLMProvider("qwen2.5:3b", transport=httpx.MockTransport(handler))
    text, _ = await provider.generate("p", system_prompt="s")

    assert text == "[]"
    assert seen[0].url.path == "/api/chat"
    assert json.loads(seen[0].content)["stream"] is False


def test_provider_selection(monkeypatch):
    monkeypatch.setattr(settings, "llm_provider", "none")
    assert isinstance(get_llm_provider("pattern_analyzer"), NullLLMProvider)
    monkeypatch.setattr(settings, "llm_provider", "ollama")
    assert isinstance(get_llm_provider("pattern_analyzer"), OllamaLLMProvider)
    monkeypatch.setattr(settings, "llm_provider", "GROQ")
    assert isinstance(get_llm_provider("pattern_analyzer"), GroqLLMProvider)


def test_secrets_are_redacted_from_log_text():
    line = "calling api_key=gsk_live_123 with Authorization: Bearer gsk_live_123 password=hunter2"
    redacted = redact_secrets(line)
    assert "gsk_live_123" not in redacted
    assert "hunter2" not in redacted
    assert redacted.count("[REDACTED]") >= 3
    assert redact_secrets("connecting to postgresql+asyncpg://mistakes:s3cret@db:5432/app") == (
        "connecting to postgresql+asyncpg://mistakes:[REDACTED]@db:5432/app"
    )


def test_breaker_lets_one_probe_through_after_cooldown():
    now = [0.0]
    breaker = CircuitBreaker("llm:test", failure_threshold=2, cooldown_seconds=10, clock=lambda: now[0])

    breaker.record_failure()
    breaker.guard()
    breaker.record_failure()
    with pytest.raises(ProviderError) as excinfo:
        breaker.guard()
    assert excinfo.value.details["retry_after_seconds"] == 10.0

    now[0] = 10.5
    breaker.guard()
    with pytest.raises(ProviderError):
        breaker.guard()

    breaker.record_success()
    breaker.guard()
    assert breaker.status()["state"] == "closed"


def test_failed_probe_reopens_breaker():
    now = [0.0]
    breaker = CircuitBreaker("llm:test", failure_threshold=1, cooldown_seconds=5, clock=lambda: now[0])
    breaker.record_failure()

    now[0] = 6.0
    breaker.guard()
    breaker.record_failure()

    assert breaker.status()["state"] == "open"
    assert breaker.status()["retry_after_seconds"] == 5.0
