"""
Agent Service — the three named alert producers.

Agents are rows in `agents`; a run draws at most one canned scenario for the
agent, records it as an alert through AlertService (so it is broadcast), and
logs the run in action_agent_executions with a daily rollup in
action_agent_metrics.
"""

import random
import time
from datetime import date, datetime
from typing import Any, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.schemas import AgentRunResult, AlertCreate
from alerts.service import AlertNotifier, AlertService
from core.config import Settings
from core.errors import InternalError, NotFoundError, ValidationError
from db.models import AGENT_STATUSES, ActionAgentExecution, ActionAgentMetric, Activity, Agent

logger = structlog.get_logger()

DEFAULT_AGENTS: list[dict[str, Any]] = [
    {
        "id": "competitive",
        "name": "Competitive Intelligence",
        "status": "active",
        "accuracy": 94.7,
        "configuration": {
            "competitors": ["Ryanair", "Wizz Air", "Vueling"],
            "priceChangeThreshold": 10,
            "impactThreshold": 5000,
        },
    },
    {
        "id": "performance",
        "name": "Performance Attribution",
        "status": "active",
        "accuracy": 92.3,
        "configuration": {
            "varianceThreshold": 5,
            "forecastAccuracy": 85,
            "alertThreshold": 20000,
        },
    },
    {
        "id": "network",
        "name": "Network Analysis",
        "status": "learning",
        "accuracy": 89.1,
        "configuration": {
            "optimizationPeriod": 30,
            "capacityThreshold": 80,
            "yieldThreshold": 15,
        },
    },
]

# agent_id -> (probability an analysis fires, alert payload)
SCENARIOS: dict[str, tuple[float, dict[str, Any]]] = {
    "competitive": (
        0.3,
        {
            "type": "competitive",
            "title": "Ryanair 25% Price Drop - LGW→BCN",
            "description": (
                "Competitor reduced prices by 25% on London Gatwick to Barcelona route. "
                "Estimated revenue impact: £87,500 weekly."
            ),
            "priority": "critical",
            "category": "competitive",
            "route": "LGW→BCN",
            "route_name": "London Gatwick → Barcelona",
            "impact_score": 87500.0,
            "confidence": 0.95,
            "metadata": {"competitor": "Ryanair", "priceChange": -25, "previousPrice": 120, "newPrice": 90},
        },
    ),
    "performance": (
        0.4,
        {
            "type": "performance",
            "title": "Demand Surge - STN→AMS",
            "description": (
                "20% booking increase detected overnight on Stansted to Amsterdam. Current load factor: 89%."
            ),
            "priority": "high",
            "category": "performance",
            "route": "STN→AMS",
            "route_name": "London Stansted → Amsterdam",
            "impact_score": 45000.0,
            "confidence": 0.87,
            "metadata": {"demandIncrease": 20, "loadFactor": 89, "opportunity": "pricing"},
        },
    ),
    "network": (
        0.2,
        {
            "type": "network",
            "title": "Capacity Reallocation Opportunity",
            "description": (
                "Network analysis suggests reallocating capacity from underperforming LGW→MAD "
                "to high-demand STN→BCN."
            ),
            "priority": "medium",
            "category": "network",
            "route": "Multiple",
            "impact_score": 125000.0,
            "confidence": 0.82,
            "metadata": {"fromRoute": "LGW→MAD", "toRoute": "STN→BCN", "capacityChange": 2},
        },
    ),
}


class AgentNotifier(AlertNotifier, Protocol):
    async def broadcast_agent_status(self, agent_id: str, status: str) -> int: ...


class AgentService:
    def __init__(self, db: AsyncSession, notifier: AgentNotifier, settings: Settings):
        self.db = db
        self.notifier = notifier
        self.settings = settings

    async def initialize_agents(self) -> int:
        """Insert any missing default agents. Returns how many were created."""
        existing = set((await self.db.execute(select(Agent.id))).scalars().all())
        created = 0
        for defaults in DEFAULT_AGENTS:
            if defaults["id"] in existing:
                continue
            self.db.add(Agent(**defaults, total_analyses=0, successful_predictions=0))
            created += 1
        if created:
            await self.db.commit()
            logger.info("agents.initialized", created=created)
        return created

    async def list_agents(self) -> list[Agent]:
        result = await self.db.execute(select(Agent).order_by(Agent.id))
        return list(result.scalars().all())

    async def get_agent(self, agent_id: str) -> Agent:
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise NotFoundError("Agent not found", details={"agentId": agent_id})
        return agent

    async def set_status(self, agent_id: str, status: str) -> None:
        if status not in AGENT_STATUSES:
            raise ValidationError(f"Unknown agent status '{status}'", details={"allowed": list(AGENT_STATUSES)})
        agent = await self.get_agent(agent_id)
        if agent.status == status:
            return

        previous = agent.status
        agent.status = status
        agent.updated_at = datetime.utcnow()
        self.db.add(
            Activity(
                type="agent_status",
                title=f"{agent.name} {status}",
                description=f"Status changed from {previous} to {status}",
                agent_id=agent_id,
                activity_metadata={"from": previous, "to": status},
            )
        )
        await self.db.commit()

        logger.info("agent.status_changed", agent_id=agent_id, previous=previous, status=status)
        await self.notifier.broadcast_agent_status(agent_id, status)

    async def run_agent(self, agent_id: str, rng: random.Random | None = None) -> AgentRunResult:
        """Run one analysis pass for agent_id and record the execution.

        The execution row is committed as `running` before any work starts, so
        a failed pass is always visible as `failed` with its error message.
        """
        rng = rng or random.Random()
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise ValidationError(f"Unknown agent '{agent_id}'", details={"agentId": agent_id})

        started = time.perf_counter()
        execution = ActionAgentExecution(agent_id=agent_id, execution_status="running", start_time=datetime.utcnow())
        self.db.add(execution)
        await self.db.commit()
        execution_id = execution.id
        log = logger.bind(agent_id=agent_id, execution_id=str(execution_id))
        log.info("agent.run_started")

        alert_ids = []
        try:
            probability, payload = SCENARIOS.get(agent_id, (0.0, None))
            if payload is not None and rng.random() < probability:
                alerts = AlertService(self.db, self.notifier, self.settings)
                alert = await alerts.create_alert(AlertCreate.model_validate({**payload, "agent_id": agent_id}))
                alert_ids.append(alert.id)
                execution.confidence = alert.confidence
                execution.revenue_impact = alert.impact_score

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            now = datetime.utcnow()
            agent.total_analyses = (agent.total_analyses or 0) + 1
            agent.last_active = now
            agent.updated_at = now
            execution.execution_status = "completed"
            execution.end_time = now
            execution.alerts_generated = len(alert_ids)
            execution.processing_time_ms = elapsed_ms
            execution.result_data = {"alert_ids": [str(a) for a in alert_ids]}
            await self._record_daily_metric(agent_id, len(alert_ids), elapsed_ms)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            log.error("agent.run_failed", error=str(exc), alerts_committed=len(alert_ids))
            await self._record_failure(execution_id, agent_id, str(exc), alert_ids, elapsed_ms)
            raise InternalError(
                "Agent run failed", details={"agentId": agent_id, "executionId": str(execution_id)}
            ) from exc

        log.info("agent.run_completed", alerts_generated=len(alert_ids), processing_time_ms=elapsed_ms)
        return AgentRunResult(
            agent_id=agent_id,
            execution_id=execution_id,
            status=execution.execution_status,
            alerts_generated=len(alert_ids),
            alert_ids=alert_ids,
            processing_time_ms=elapsed_ms,
        )

    async def _record_failure(
        self, execution_id, agent_id: str, error: str, alert_ids: list, elapsed_ms: int
    ) -> None:
        """Mark the execution failed, then count the error in the daily rollup."""
        try:
            execution = await self.db.get(ActionAgentExecution, execution_id)
            if execution is not None:
                execution.execution_status = "failed"
                execution.end_time = datetime.utcnow()
                execution.error_message = error[:2000]
                execution.processing_time_ms = elapsed_ms
                # Alerts created before the failure were already committed and broadcast.
                execution.alerts_generated = len(alert_ids)
                execution.result_data = {"alert_ids": [str(a) for a in alert_ids]}
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("agent.failure_not_recorded", agent_id=agent_id, execution_id=str(execution_id), error=str(exc))
            return

        try:
            await self._record_daily_metric(agent_id, len(alert_ids), elapsed_ms, failed=True)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("agent.metric_not_recorded", agent_id=agent_id, error=str(exc))

    async def run_all(self, rng: random.Random | None = None) -> list[AgentRunResult]:
        """Run every agent that is not in maintenance."""
        results = []
        for agent in await self.list_agents():
            if agent.status == "maintenance":
                continue
            results.append(await self.run_agent(agent.id, rng=rng))
        return results

    async def _record_daily_metric(
        self, agent_id: str, alerts_generated: int, elapsed_ms: int, failed: bool = False
    ) -> None:
        today = date.today()
        result = await self.db.execute(
            select(ActionAgentMetric).where(ActionAgentMetric.agent_id == agent_id, ActionAgentMetric.metric_date == today)
        )
        metric = result.scalar_one_or_none()
        if metric is None:
            metric = ActionAgentMetric(
                agent_id=agent_id, metric_date=today, execution_count=0, error_count=0, alerts_generated=0
            )
            self.db.add(metric)

        previous_runs = metric.execution_count or 0
        metric.execution_count = previous_runs + 1
        metric.alerts_generated = (metric.alerts_generated or 0) + alerts_generated
        if failed:
            metric.error_count = (metric.error_count or 0) + 1
        metric.avg_processing_time = int(((metric.avg_processing_time or 0) * previous_runs + elapsed_ms) / metric.execution_count)
        metric.success_rate = round((metric.execution_count - metric.error_count) / metric.execution_count * 100, 2)
