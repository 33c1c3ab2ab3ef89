"""Chat-completion clients used by the question generator and the pattern analyzer.

``generate`` returns ``(text, usage)``. ``text`` is None when the provider is not
configured or answered with nothing; transport failures and error statuses raise
ProviderError and count against the provider's circuit breaker.
"""
from abc import ABC, abstractmethod

import httpx

from mistake_analyzer.core.errors import ProviderError
from mistake_analyzer.core.resilience import CircuitBreaker, get_breaker
from mistake_analyzer.core.settings import settings


def _approx_tokens(text: str) -> int:
    # ~4 characters per token; used when the provider reports no usage block.
    return max(1, len((text or "").strip()) // 4)


def _chat_messages(prompt: str, system_prompt: str | None) -> list[dict]:
    messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
    return messages + [{"role": "user", "content": prompt}]


class BaseLLMProvider(ABC):
    provider_name: str

    @abstractmethod
    async def generate(self, prompt: str, *, system_prompt: str | None = None) -> tuple[str | None, dict]:
        raise NotImplementedError


class HttpChatProvider(BaseLLMProvider):
    """Shared HTTP plumbing: one short-lived AsyncClient per call, guarded by a breaker."""

    label = "LLM"

    def __init__(self, model_name: str, role: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.model_name = model_name
        self.role = role or "pattern_analyzer"
        self._transport = transport

    @property
    def breaker(self) -> CircuitBreaker:
        return get_breaker(f"llm:{self.provider_name}:{self.model_name}:{self.role}")

    @abstractmethod
    async def _send(self, client: httpx.AsyncClient, messages: list[dict]) -> httpx.Response:
        raise NotImplementedError

    @abstractmethod
    def _extract(self, body: dict) -> tuple[str, dict]:
        """Pull (text, reported usage) out of a successful response body."""

    def _usage(self, prompt: str, text: str, reported: dict) -> dict:
        usage = {
            "provider": self.provider_name,
            "model": self.model_name,
            "role": self.role,
            "prompt_tokens": reported.get("prompt_tokens", _approx_tokens(prompt)),
            "completion_tokens": reported.get("completion_tokens", _approx_tokens(text)),
        }
        if not text:
            usage["reason"] = "no_content"
        return usage

    async def generate(self, prompt: str, *, system_prompt: str | None = None) -> tuple[str | None, dict]:
        breaker = self.breaker
        breaker.guard()
        try:
            async with httpx.AsyncClient(timeout=settings.llm_timeout_seconds, transport=self._transport) as client:
                response = await self._send(client, _chat_messages(prompt, system_prompt))
        except httpx.HTTPError as exc:
            breaker.record_failure()
            raise ProviderError(f"{self.label} request failed: {exc}") from exc

        if response.status_code >= 400:
            breaker.record_failure()
            raise ProviderError(f"{self.label} error: {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            breaker.record_failure()
            raise ProviderError(f"{self.label} returned a non-JSON body") from exc
        breaker.record_success()

        text, reported = self._extract(body if isinstance(body, dict) else {})
        text = (text or "").strip()
        return (text or None), self._usage(prompt, text, reported)


class GroqLLMProvider(HttpChatProvider):
    """OpenAI-compatible chat completions endpoint (Groq by default)."""

    provider_name = "groq"
    label = "Groq API"

    def __init__(self, model_name: str | None = None, role: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(model_name or settings.llm_model, role=role, transport=transport)

    async def generate(self, prompt: str, *, system_prompt: str | None = None) -> tuple[str | None, dict]:
        if not settings.groq_api_key:
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "missing_api_key"}
        return await super().generate(prompt, system_prompt=system_prompt)

    async def _send(self, client: httpx.AsyncClient, messages: list[dict]) -> httpx.Response:
        return await client.post(
            settings.groq_api_url,
            json={
                "model": self.model_name,
                "messages": messages,
                "temperature": settings.llm_temperature,
                "max_tokens": settings.llm_max_tokens,
            },
            headers={"Authorization": f"Bearer {settings.groq_api_key}"},
        )

    def _extract(self, body: dict) -> tuple[str, dict]:
        choices = body.get("choices") or []
        first = choices[0] if choices and isinstance(choices[0], dict) else {}
        return (first.get("message") or {}).get("content") or "", body.get("usage") or {}


class OllamaLLMProvider(HttpChatProvider):
    provider_name = "ollama"
    label = "Ollama"

    async def _send(self, client: httpx.AsyncClient, messages: list[dict]) -> httpx.Response:
        return await client.post(
            f"{settings.ollama_base_url.rstrip('/')}/api/chat",
            json={
                "model": self.model_name,
                "messages": messages,
                "stream": False,
                "options": {"temperature": settings.llm_temperature},
            },
        )

    def _extract(self, body: dict) -> tuple[str, dict]:
        # Ollama reports eval counts rather than token usage.
        return (body.get("message") or {}).get("content") or "", {}


class NullLLMProvider(BaseLLMProvider):
    """Selected when no provider is configured; every call comes back empty."""

    provider_name = "none"

    async def generate(self, prompt: str, *, system_prompt: str | None = None) -> tuple[str | None, dict]:
        return None, {
            "provider": self.provider_name,
            "model": "none",
            "prompt_tokens": _approx_tokens(prompt),
            "completion_tokens": 0,
            "reason": "unsupported_provider",
        }


def get_llm_provider(role: str | None = None) -> BaseLLMProvider:
    name = (settings.llm_provider or "").lower()
    if name == "groq":
        return GroqLLMProvider(role=role)
    if name == "ollama":
        return OllamaLLMProvider(settings.ollama_model, role=role)
    return NullLLMProvider()
