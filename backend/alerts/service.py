"""
Alert Lifecycle Service — create, query and transition alerts; attach feedback;
build the dashboard summary.

Writes are single-statement commits; realtime pushes happen after the commit
and are best-effort (a failed push never fails the write).

Status policy:
  active    -> dismissed | escalated
  escalated -> dismissed
  dismissed -> (terminal)
Re-applying the current status is a no-op.
"""

from datetime import date, datetime, timedelta
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.metadata import coerce_metadata, dump_metadata
from alerts.schemas import (
    ActivityResponse,
    AgentSummary,
    AlertCounts,
    AlertCreate,
    AlertResponse,
    DashboardSummary,
    FeedbackCreate,
    HeadlineMetrics,
    serialize_alert,
)
from core.config import Settings
from core.errors import NotFoundError, ValidationError
from db.models import (
    ALERT_PRIORITIES,
    ALERT_STATUSES,
    FEEDBACK_RATING_MAX,
    FEEDBACK_RATING_MIN,
    Activity,
    Agent,
    Alert,
    Feedback,
    RoutePerformance,
)

logger = structlog.get_logger()

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "active": frozenset({"dismissed", "escalated"}),
    "escalated": frozenset({"dismissed"}),
    "dismissed": frozenset(),
}

HEADLINE_LOOKBACK_DAYS = 7


class AlertNotifier(Protocol):
    async def broadcast_alert(self, alert: dict) -> int: ...

    async def broadcast_alert_status(self, alert_id: str, status: str) -> int: ...


def can_transition(current: str, target: str) -> bool:
    """True when target is reachable from current (or equal to it)."""
    return current == target or target in ALLOWED_TRANSITIONS.get(current, frozenset())


class AlertService:
    def __init__(self, db: AsyncSession, notifier: AlertNotifier, settings: Settings):
        self.db = db
        self.notifier = notifier
        self.settings = settings

    # ── Queries ────────────────────────────────────────────────────────

    def resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.settings.alerts_default_limit
        if limit < 1 or limit > self.settings.alerts_max_limit:
            raise ValidationError(
                f"limit must be between 1 and {self.settings.alerts_max_limit}",
                details={"limit": limit},
            )
        return limit

    async def list_alerts(self, priority: str | None = None, limit: int | None = None) -> list[Alert]:
        """Most recent alerts first, optionally filtered by priority, capped at limit."""
        capped = self.resolve_limit(limit)
        query = select(Alert)
        if priority:
            if priority not in ALERT_PRIORITIES:
                raise ValidationError(f"Unknown priority '{priority}'", details={"allowed": list(ALERT_PRIORITIES)})
            query = query.where(Alert.priority == priority)
        query = query.order_by(Alert.created_at.desc(), Alert.id).limit(capped)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_alert(self, alert_id: UUID) -> Alert:
        alert = await self.db.get(Alert, alert_id)
        if alert is None:
            raise NotFoundError("Alert not found", details={"id": str(alert_id)})
        return alert

    # ── Writes ─────────────────────────────────────────────────────────

    async def create_alert(self, data: AlertCreate) -> Alert:
        agent = await self.db.get(Agent, data.agent_id)
        if agent is None:
            raise ValidationError(f"Unknown agent '{data.agent_id}'", details={"agentId": data.agent_id})

        metadata = coerce_metadata(data.category, data.metadata)
        alert = Alert(
            type=data.type or data.category,
            priority=data.priority,
            title=data.title,
            description=data.description,
            route=data.route,
            route_name=data.route_name,
            metric_value=data.metric_value,
            threshold_value=data.threshold_value,
            impact_score=data.impact_score,
            confidence=data.confidence,
            agent_id=data.agent_id,
            alert_metadata=dump_metadata(metadata),
            status="active",
            category=data.category,
            created_at=datetime.utcnow(),
        )
        self.db.add(alert)
        self.db.add(
            Activity(
                type="alert",
                title=f"{agent.name} alert",
                description=data.title,
                agent_id=data.agent_id,
                activity_metadata={"priority": data.priority, "category": data.category},
            )
        )
        await self.db.commit()
        await self.db.refresh(alert)

        logger.info(
            "alert.created",
            alert_id=str(alert.id),
            agent_id=alert.agent_id,
            priority=alert.priority,
            category=alert.category,
        )
        await self.notifier.broadcast_alert(serialize_alert(alert))
        return alert

    async def update_status(self, alert_id: UUID, status: str) -> None:
        if status not in ALERT_STATUSES:
            raise ValidationError(f"Unknown status '{status}'", details={"allowed": list(ALERT_STATUSES)})

        alert = await self.get_alert(alert_id)
        if alert.status == status:
            return
        if not can_transition(alert.status, status):
            raise ValidationError(
                f"Cannot move alert from '{alert.status}' to '{status}'",
                details={"from": alert.status, "to": status},
            )

        previous = alert.status
        now = datetime.utcnow()
        alert.status = status
        if status == "escalated":
            alert.acknowledged_at = now
        elif status == "dismissed":
            alert.resolved_at = now
        self.db.add(
            Activity(
                type="alert_status",
                title=f"Alert {status}",
                description=alert.title,
                agent_id=alert.agent_id,
                activity_metadata={"alert_id": str(alert.id), "from": previous, "to": status},
            )
        )
        await self.db.commit()

        logger.info("alert.status_changed", alert_id=str(alert.id), previous=previous, status=status)
        await self.notifier.broadcast_alert_status(str(alert.id), status)

    async def submit_feedback(self, agent_id: str, data: FeedbackCreate) -> Feedback:
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise NotFoundError("Agent not found", details={"agentId": agent_id})
        if not FEEDBACK_RATING_MIN <= data.rating <= FEEDBACK_RATING_MAX:
            raise ValidationError(
                f"rating must be between {FEEDBACK_RATING_MIN} and {FEEDBACK_RATING_MAX}",
                details={"rating": data.rating},
            )

        alert = await self.db.get(Alert, data.alert_id)
        if alert is None:
            raise ValidationError("Referenced alert does not exist", details={"alertId": str(data.alert_id)})
        if alert.agent_id != agent_id:
            raise ValidationError(
                "Alert was not produced by this agent",
                details={"alertId": str(alert.id), "agentId": agent_id, "alertAgentId": alert.agent_id},
            )

        feedback = Feedback(
            alert_id=alert.id,
            agent_id=agent_id,
            user_id=data.user_id,
            rating=data.rating,
            comment=data.comment,
            action_taken=data.action_taken,
            impact_realized=data.impact_realized,
            created_at=datetime.utcnow(),
        )
        self.db.add(feedback)
        await self.db.flush()

        await self._refresh_agent_accuracy(agent)
        self.db.add(
            Activity(
                type="feedback",
                title="Learning Update",
                description=f"{agent.name} accuracy updated from analyst feedback",
                agent_id=agent_id,
                user_id=data.user_id,
                activity_metadata={"alert_id": str(alert.id), "rating": data.rating},
            )
        )
        await self.db.commit()

        logger.info(
            "feedback.recorded",
            agent_id=agent_id,
            alert_id=str(alert.id),
            rating=data.rating,
            accuracy=agent.accuracy,
        )
        return feedback

    async def _refresh_agent_accuracy(self, agent: Agent) -> None:
        """Accuracy is the mean rating over the feedback window scaled to 0-100."""
        since = datetime.utcnow() - timedelta(days=self.settings.feedback_window_days)
        result = await self.db.execute(
            select(
                func.avg(Feedback.rating),
                func.sum(case((Feedback.rating >= 4, 1), else_=0)),
            ).where(Feedback.agent_id == agent.id, Feedback.created_at >= since)
        )
        avg_rating, successful = result.one()
        if avg_rating is None:
            return
        agent.accuracy = round(max(0.0, min(100.0, float(avg_rating) / FEEDBACK_RATING_MAX * 100)), 1)
        agent.successful_predictions = int(successful or 0)
        agent.updated_at = datetime.utcnow()

    # ── Aggregates ─────────────────────────────────────────────────────

    async def dashboard_summary(self) -> DashboardSummary:
        total = (await self.db.execute(select(func.count()).select_from(Alert))).scalar() or 0
        critical = (
            await self.db.execute(select(func.count()).select_from(Alert).where(Alert.priority == "critical"))
        ).scalar() or 0
        recent = await self.list_alerts(limit=self.settings.dashboard_recent_alerts)

        agents = (await self.db.execute(select(Agent).order_by(Agent.id))).scalars().all()
        feedback_counts = dict(
            (await self.db.execute(select(Feedback.agent_id, func.count(Feedback.id)).group_by(Feedback.agent_id))).all()
        )
        agent_accuracy = round(sum(a.accuracy or 0.0 for a in agents) / len(agents), 1) if agents else None

        since = date.today() - timedelta(days=HEADLINE_LOOKBACK_DAYS)
        network_yield, load_factor = (
            await self.db.execute(
                select(func.avg(RoutePerformance.yield_per_pax), func.avg(RoutePerformance.load_factor)).where(
                    RoutePerformance.date >= since
                )
            )
        ).one()

        activities = (
            (
                await self.db.execute(
                    select(Activity).order_by(Activity.created_at.desc()).limit(self.settings.dashboard_activity_count)
                )
            )
            .scalars()
            .all()
        )

        return DashboardSummary(
            alerts=AlertCounts(
                total=total,
                critical=critical,
                recent=[AlertResponse.model_validate(a) for a in recent],
            ),
            agents=[
                AgentSummary(
                    id=a.id,
                    name=a.name,
                    status=a.status,
                    accuracy=a.accuracy or 0.0,
                    feedback_count=feedback_counts.get(a.id, 0),
                )
                for a in agents
            ],
            metrics=HeadlineMetrics(
                network_yield=round(network_yield, 2) if network_yield is not None else None,
                load_factor=round(load_factor, 1) if load_factor is not None else None,
                agent_accuracy=agent_accuracy,
            ),
            activities=[ActivityResponse.model_validate(a) for a in activities],
        )
