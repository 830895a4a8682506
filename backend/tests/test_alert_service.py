"""
Alert service tests — status policy, limits, feedback and the dashboard summary.
"""

import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from alerts.schemas import AlertCreate, FeedbackCreate
from alerts.service import AlertService, can_transition
from core.errors import NotFoundError, ValidationError
from db.models import Agent, Feedback, RoutePerformance


class RecordingNotifier:
    def __init__(self):
        self.alerts: list[dict] = []
        self.statuses: list[tuple[str, str]] = []

    async def broadcast_alert(self, alert: dict) -> int:
        self.alerts.append(alert)
        return 1

    async def broadcast_alert_status(self, alert_id: str, status: str) -> int:
        self.statuses.append((alert_id, status))
        return 1


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(test_db, notifier, settings):
    return AlertService(test_db, notifier, settings)


class TestStatusPolicy:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("active", "dismissed", True),
            ("active", "escalated", True),
            ("escalated", "dismissed", True),
            ("escalated", "active", False),
            ("dismissed", "active", False),
            ("dismissed", "escalated", False),
            ("dismissed", "dismissed", True),
            ("active", "active", True),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert can_transition(current, target) is allowed


@pytest.mark.asyncio
class TestAlertService:
    async def test_resolve_limit_defaults(self, service):
        assert service.resolve_limit(None) == 50
        assert service.resolve_limit(1) == 1
        assert service.resolve_limit(1500) == 1500
        with pytest.raises(ValidationError):
            service.resolve_limit(1501)

    async def test_create_broadcasts_serialized_alert(self, service, notifier):
        alert = await service.create_alert(
            AlertCreate.model_validate(
                {
                    "title": "Vueling promo on LGW→BCN",
                    "priority": "medium",
                    "category": "competitive",
                    "agentId": "competitive",
                    "metadata": {"kind": "competitive", "competitor": "Vueling", "priceChange": -12},
                }
            )
        )
        assert len(notifier.alerts) == 1
        pushed = notifier.alerts[0]
        assert pushed["id"] == str(alert.id)
        assert pushed["metadata"] == {"kind": "competitive", "competitor": "Vueling", "priceChange": -12}

    async def test_status_change_broadcasts_once(self, service, notifier, seeded_alerts):
        alert = seeded_alerts[0]
        await service.update_status(alert.id, "escalated")
        await service.update_status(alert.id, "escalated")
        assert notifier.statuses == [(str(alert.id), "escalated")]

    async def test_unknown_alert(self, service):
        with pytest.raises(NotFoundError):
            await service.update_status(uuid.uuid4(), "dismissed")


@pytest.mark.asyncio
class TestFeedback:
    @pytest.mark.parametrize("rating", [0, 6, -1])
    async def test_out_of_range_rating_writes_nothing(self, service, test_db, seeded_alerts, rating):
        alert = seeded_alerts[0]
        with pytest.raises(ValidationError):
            await service.submit_feedback("competitive", FeedbackCreate(alert_id=alert.id, rating=rating))
        count = (await test_db.execute(select(func.count()).select_from(Feedback))).scalar()
        assert count == 0

    async def test_unknown_agent(self, service, seeded_alerts):
        with pytest.raises(NotFoundError):
            await service.submit_feedback("pricing", FeedbackCreate(alert_id=seeded_alerts[0].id, rating=4))

    async def test_missing_alert(self, service):
        with pytest.raises(ValidationError):
            await service.submit_feedback("competitive", FeedbackCreate(alert_id=uuid.uuid4(), rating=4))

    async def test_alert_from_other_agent_rejected(self, service, seeded_alerts):
        performance_alert = seeded_alerts[1]
        with pytest.raises(ValidationError):
            await service.submit_feedback("competitive", FeedbackCreate(alert_id=performance_alert.id, rating=4))

    async def test_accuracy_is_mean_rating_scaled(self, service, test_db, seeded_alerts):
        competitive_alerts = [a for a in seeded_alerts if a.agent_id == "competitive"]
        await service.submit_feedback("competitive", FeedbackCreate(alert_id=competitive_alerts[0].id, rating=5))
        await service.submit_feedback("competitive", FeedbackCreate(alert_id=competitive_alerts[1].id, rating=3))

        agent = await test_db.get(Agent, "competitive")
        assert agent.accuracy == 80.0
        assert agent.successful_predictions == 1

    async def test_accuracy_rounded_to_one_decimal(self, service, test_db, seeded_alerts):
        competitive_alerts = [a for a in seeded_alerts if a.agent_id == "competitive"]
        for alert, rating in zip([competitive_alerts[0], competitive_alerts[1], competitive_alerts[0]], [5, 4, 4]):
            await service.submit_feedback("competitive", FeedbackCreate(alert_id=alert.id, rating=rating))

        agent = await test_db.get(Agent, "competitive")
        assert agent.accuracy == 86.7


@pytest.mark.asyncio
class TestDashboardSummary:
    async def test_summary_without_route_data(self, service, seeded_alerts):
        summary = await service.dashboard_summary()
        assert summary.alerts.total == 4
        assert summary.alerts.critical == 1
        assert len(summary.alerts.recent) == 3
        assert summary.alerts.recent[0].priority == "critical"
        assert {a.id for a in summary.agents} == {"competitive", "performance", "network"}
        assert summary.metrics.network_yield is None
        assert summary.metrics.load_factor is None
        assert summary.metrics.agent_accuracy == round((94.7 + 92.3 + 89.1) / 3, 1)

    async def test_summary_averages_recent_route_data(self, service, test_db):
        today = date.today()
        test_db.add_all(
            [
                RoutePerformance(route="LGW-BCN", route_name="Gatwick-Barcelona", date=today, yield_per_pax=80.0, load_factor=90.0),
                RoutePerformance(route="LGW-MAD", route_name="Gatwick-Madrid", date=today, yield_per_pax=60.0, load_factor=80.0),
                RoutePerformance(
                    route="LGW-BCN",
                    route_name="Gatwick-Barcelona",
                    date=today - timedelta(days=30),
                    yield_per_pax=10.0,
                    load_factor=10.0,
                ),
            ]
        )
        await test_db.commit()

        summary = await service.dashboard_summary()
        assert summary.metrics.network_yield == 70.0
        assert summary.metrics.load_factor == 85.0

    async def test_feedback_counts_per_agent(self, service, seeded_alerts):
        await service.submit_feedback("competitive", FeedbackCreate(alert_id=seeded_alerts[0].id, rating=4))
        summary = await service.dashboard_summary()
        counts = {a.id: a.feedback_count for a in summary.agents}
        assert counts == {"competitive": 1, "network": 0, "performance": 0}
