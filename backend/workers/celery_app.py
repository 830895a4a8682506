"""
Celery Application Configuration

One beat entry drives the periodic agent sweep; results are not stored since
every run already persists an action_agent_executions row.
"""

from celery import Celery

from core.config import get_settings

settings = get_settings()

celery_app = Celery("velociti", broker=settings.redis_url)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    # A sweep that outlives its interval would overlap the next one.
    task_soft_time_limit=settings.agent_run_interval_seconds,
    task_routes={
        "workers.agents.*": {"queue": "agents"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        "run-agents": {
            "task": "workers.agents.run_all_agents",
            "schedule": float(settings.agent_run_interval_seconds),
            "options": {"queue": "agents", "expires": settings.agent_run_interval_seconds},
        },
    },
)

celery_app.autodiscover_tasks(["workers"], related_name="agents")
