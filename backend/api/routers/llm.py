"""
LLM Router — streamed analyst queries over server-sent events.
"""

from typing import Literal

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from api.deps import api_rate_limit, get_context, llm_rate_limit
from core.context import AppContext
from core.errors import ValidationError
from llm.providers import build_messages
from llm.streaming import StreamRelay, strategy_for

logger = structlog.get_logger()
router = APIRouter(
    prefix="/api/llm",
    tags=["llm"],
    dependencies=[Depends(api_rate_limit), Depends(llm_rate_limit)],
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class StreamQuery(BaseModel):
    query: str | None = None
    provider: str = "openai"
    type: Literal["strategic", "competitive", "performance", "network"] = "strategic"


@router.post("/stream")
async def stream_query(body: StreamQuery, context: AppContext = Depends(get_context)):
    if not body.query or not body.query.strip():
        raise ValidationError("Query is required")

    provider = context.providers.get(body.provider)
    strategy = strategy_for(
        provider,
        context.settings.synthetic_chunk_min_delay,
        context.settings.synthetic_chunk_max_delay,
    )
    logger.info("llm.stream_requested", provider=provider.name, type=body.type, query_length=len(body.query))

    relay = StreamRelay(provider, strategy)
    return StreamingResponse(
        relay.events(build_messages(body.query, body.type)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
