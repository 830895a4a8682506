"""
Agent Workers — periodic analysis passes for every agent.

A worker process has its own AlertRelay with no connected sockets, so alerts
created here are not pushed live; dashboards see them in the next snapshot or
refetch.

Schedule: See celery_app.py beat_schedule
"""

import asyncio
import random
from datetime import datetime, timezone

import structlog

from agents.service import AgentService
from core.context import AppContext
from workers.celery_app import celery_app

logger = structlog.get_logger()


async def run_agents_once(context: AppContext, rng: random.Random | None = None) -> dict:
    """Run every non-maintenance agent once and summarize the pass."""
    async with context.session_factory() as db:
        service = AgentService(db, context.relay, context.settings)
        results = await service.run_all(rng=rng)

    summary = {
        "status": "success",
        "agents_run": len(results),
        "alerts_generated": sum(r.alerts_generated for r in results),
        "agents": {r.agent_id: r.alerts_generated for r in results},
        "triggered_at": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("agents.pass_complete", **summary)
    return summary


@celery_app.task(
    name="workers.agents.run_all_agents",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def run_all_agents(self):
    """Beat job: one analysis pass across all agents."""
    from core.config import get_settings

    run_id = self.request.id or "manual"
    logger.info("agents.pass_started", run_id=run_id)

    async def _run():
        context = AppContext.from_settings(get_settings())
        try:
            return await run_agents_once(context)
        finally:
            await context.aclose()

    try:
        return asyncio.run(_run())
    except Exception as exc:
        logger.error("agents.pass_failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
