"""
Velociti API Dependencies

Dependency injection for the app context, DB sessions, services and rate
limits.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from agents.service import AgentService
from alerts.service import AlertService
from core.context import AppContext
from core.security import client_key


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_db(context: AppContext = Depends(get_context)) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with context.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_alert_service(
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> AlertService:
    return AlertService(db, context.relay, context.settings)


def get_agent_service(
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> AgentService:
    return AgentService(db, context.relay, context.settings)


def api_rate_limit(request: Request, context: AppContext = Depends(get_context)) -> None:
    context.rate_limiter.hit("api", client_key(request))


def llm_rate_limit(request: Request, context: AppContext = Depends(get_context)) -> None:
    context.rate_limiter.hit("llm", client_key(request))
