"""
LLM text providers.

OpenAI and Fireworks (OpenAI-compatible API) stream natively through the
`openai` SDK. Writer returns a single completion over plain HTTP, so its
output is chunked by the streaming layer instead.
"""

from collections.abc import AsyncIterator
from typing import Any

import httpx
import openai
import structlog

from core.config import Settings
from core.errors import ValidationError, VelocitiError

logger = structlog.get_logger()

TEMPERATURE = 0.7

BASE_PROMPT = (
    "You are an expert revenue management analyst for EasyJet. Provide strategic insights and "
    "analysis based on airline industry data."
)

QUERY_FOCUS = {
    "strategic": "Focus on high-level strategic decisions, market positioning, and long-term revenue optimization.",
    "competitive": "Focus on competitor analysis, market share dynamics, and competitive response strategies.",
    "performance": "Focus on operational performance metrics, efficiency improvements, and KPI optimization.",
    "network": "Focus on route network optimization, capacity allocation, and network-wide performance.",
}


class ProviderError(VelocitiError):
    status_code = 502
    default_message = "Upstream provider failed"


def build_messages(query: str, query_type: str = "strategic") -> list[dict[str, str]]:
    focus = QUERY_FOCUS.get(query_type, QUERY_FOCUS["strategic"])
    return [
        {"role": "system", "content": f"{BASE_PROMPT}\n\n{focus}"},
        {"role": "user", "content": query},
    ]


class TextProvider:
    """Base class: `stream` for native providers, `complete` for everyone."""

    name = "base"
    supports_streaming = False

    def __init__(self, model: str, max_tokens: int = 2000):
        self.model = model
        self.max_tokens = max_tokens

    def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[Any]:
        raise NotImplementedError(f"{self.name} does not stream")

    async def complete(self, messages: list[dict[str, str]]) -> str:
        raise NotImplementedError


class OpenAIProvider(TextProvider):
    name = "openai"
    supports_streaming = True

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ):
        super().__init__(model, max_tokens)
        self._api_key = api_key
        self._timeout = timeout
        self._base_url = base_url
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        # Built on first use so a missing key only fails the request that needs it.
        if self._client is None:
            if not self._api_key:
                raise ProviderError(f"{self.name} API key is not configured")
            self._client = openai.AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[Any]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                stream=True,
                max_tokens=self.max_tokens,
                temperature=TEMPERATURE,
            )
            async for chunk in response:
                yield chunk
        except openai.OpenAIError as exc:
            logger.error("llm.provider_error", provider=self.name, error=str(exc))
            raise ProviderError(str(exc)) from exc

    async def complete(self, messages: list[dict[str, str]]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=TEMPERATURE,
            )
        except openai.OpenAIError as exc:
            logger.error("llm.provider_error", provider=self.name, error=str(exc))
            raise ProviderError(str(exc)) from exc
        return response.choices[0].message.content or ""


class FireworksProvider(OpenAIProvider):
    name = "fireworks"


class WriterProvider(TextProvider):
    name = "writer"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(model, max_tokens)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def complete(self, messages: list[dict[str, str]]) -> str:
        if not self.api_key:
            raise ProviderError("writer API key is not configured")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "model": self.model,
                        "messages": messages,
                        "max_tokens": self.max_tokens,
                        "temperature": TEMPERATURE,
                    },
                )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("llm.provider_error", provider=self.name, error=str(exc))
                raise ProviderError(f"Writer request failed: {exc}") from exc

        try:
            return payload["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Writer returned an unexpected response shape") from exc


class ProviderRegistry:
    def __init__(self, providers: list[TextProvider] | None = None):
        self._providers: dict[str, TextProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: TextProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> TextProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise ValidationError(f"Unknown provider '{name}'", details={"available": self.names()})
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)


def build_providers(settings: Settings) -> ProviderRegistry:
    return ProviderRegistry(
        [
            OpenAIProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                max_tokens=settings.llm_max_tokens,
                timeout=settings.llm_timeout_seconds,
            ),
            FireworksProvider(
                api_key=settings.fireworks_api_key,
                model=settings.fireworks_model,
                max_tokens=settings.llm_max_tokens,
                timeout=settings.llm_timeout_seconds,
                base_url=settings.fireworks_base_url,
            ),
            WriterProvider(
                api_key=settings.writer_api_key,
                model=settings.writer_model,
                base_url=settings.writer_base_url,
                max_tokens=settings.llm_max_tokens,
                timeout=settings.llm_timeout_seconds,
            ),
        ]
    )
