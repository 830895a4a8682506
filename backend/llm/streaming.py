"""
Server-sent event relay for LLM answers.

Frames, each written as `data: <json>\n\n`:
    {"type": "start", "data": {"provider": ..., "model": ...}}
    {"type": "chunk", "content": "..."}
    {"type": "end", "data": {"fullContent": ..., "tokenCount": ..., "completedAt": ...}}
    {"type": "error", "error": "..."}

An upstream failure ends the stream with an error frame; nothing is retried.
"""

import asyncio
import json
import math
import random
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from llm.providers import ProviderError, TextProvider

logger = structlog.get_logger()

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def estimate_tokens(text: str) -> int:
    """Roughly four characters per token for English text."""
    return math.ceil(len(text) / 4)


class NativePassthroughStrategy:
    """Relay each upstream delta as it arrives."""

    async def chunks(self, provider: TextProvider, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        async for chunk in provider.stream(messages):
            try:
                content = chunk.choices[0].delta.content
            except (AttributeError, IndexError, TypeError):
                logger.warning("llm.malformed_chunk", provider=provider.name)
                continue
            if content:
                yield content


class SyntheticChunkingStrategy:
    """Fetch the whole answer, then emit it sentence by sentence with short pauses."""

    def __init__(
        self,
        min_delay: float = 0.1,
        max_delay: float = 0.3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rng = rng or random.Random()

    @staticmethod
    def split(text: str) -> list[str]:
        sentences = [s for s in SENTENCE_BOUNDARY.split(text) if s.strip()]
        return [s if i == 0 else f" {s}" for i, s in enumerate(sentences)]

    async def chunks(self, provider: TextProvider, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        text = await provider.complete(messages)
        segments = self.split(text)
        for i, segment in enumerate(segments):
            yield segment
            if i < len(segments) - 1:
                await self._sleep(self._rng.uniform(self.min_delay, self.max_delay))


def strategy_for(provider: TextProvider, min_delay: float = 0.1, max_delay: float = 0.3):
    if provider.supports_streaming:
        return NativePassthroughStrategy()
    return SyntheticChunkingStrategy(min_delay, max_delay)


class StreamRelay:
    def __init__(self, provider: TextProvider, strategy):
        self.provider = provider
        self.strategy = strategy

    async def events(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        log = logger.bind(provider=self.provider.name, model=self.provider.model)
        log.info("llm.stream_started")
        yield sse_frame({"type": "start", "data": {"provider": self.provider.name, "model": self.provider.model}})

        parts: list[str] = []
        try:
            async for content in self.strategy.chunks(self.provider, messages):
                parts.append(content)
                yield sse_frame({"type": "chunk", "content": content})
        except ProviderError as exc:
            log.error("llm.stream_failed", error=exc.message, chunks=len(parts))
            yield sse_frame({"type": "error", "error": exc.message})
            return
        except (asyncio.CancelledError, GeneratorExit):
            log.info("llm.stream_cancelled", chunks=len(parts))
            raise

        full_content = "".join(parts)
        log.info("llm.stream_completed", chunks=len(parts), characters=len(full_content))
        yield sse_frame(
            {
                "type": "end",
                "data": {
                    "fullContent": full_content,
                    "tokenCount": estimate_tokens(full_content),
                    "completedAt": datetime.now(timezone.utc).isoformat(),
                },
            }
        )
