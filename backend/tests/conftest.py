"""
Test Configuration — Fixtures for an isolated app context, test client, and fakes.

Every test gets its own AppContext over a fresh in-memory SQLite database
(StaticPool keeps one shared connection so all sessions see the same data),
with the default agents already seeded.
"""

import json
import random
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketState

from agents.service import AgentService
from api.main import create_app
from core.config import Settings
from core.context import AppContext
from db.models import Alert

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": TEST_DATABASE_URL,
        "app_env": "test",
        "debug": False,
        "openai_api_key": "",
        "writer_api_key": "",
        "fireworks_api_key": "",
        "synthetic_chunk_min_delay": 0.0,
        "synthetic_chunk_max_delay": 0.0,
    }
    values.update(overrides)
    return Settings(**values)


class FixedRandom(random.Random):
    """Random whose random() always returns the same value."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


class FakeWebSocket:
    """Just enough of starlette's WebSocket for the relay and the /ws handler."""

    def __init__(self, incoming=(), app=None, fail_send=False):
        self.client_state = WebSocketState.CONNECTED
        self.accepted = False
        self.sent: list[dict] = []
        self.fail_send = fail_send
        self.app = app
        self._incoming = list(incoming)

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail_send:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))

    async def receive(self) -> dict:
        if not self._incoming:
            return {"type": "websocket.disconnect", "code": 1000}
        frame = self._incoming.pop(0)
        if isinstance(frame, bytes):
            return {"type": "websocket.receive", "bytes": frame}
        return {"type": "websocket.receive", "text": frame}

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.sent if m.get("type") == message_type]


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def context(settings):
    ctx = AppContext.from_settings(settings)
    await ctx.create_tables()
    async with ctx.session_factory() as db:
        await AgentService(db, ctx.relay, settings).initialize_agents()
    yield ctx
    await ctx.aclose()


@pytest.fixture
async def test_db(context):
    async with context.session_factory() as session:
        yield session


@pytest.fixture
def app(context):
    return create_app(context=context)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def fake_socket():
    return FakeWebSocket


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
async def seeded_alerts(test_db):
    """Four alerts, one per priority, one minute apart (critical newest)."""
    now = datetime.utcnow()
    configs = [
        ("critical", "competitive", "competitive", {"competitor": "Ryanair", "priceChange": -25}),
        ("high", "performance", "performance", {"demandIncrease": 20, "loadFactor": 89}),
        ("medium", "network", "network", {"fromRoute": "LGW→MAD", "toRoute": "STN→BCN"}),
        ("low", "competitive", "competitive", {"note": "free-form"}),
    ]
    alerts = []
    for i, (priority, category, agent_id, metadata) in enumerate(configs):
        alert = Alert(
            type=category,
            priority=priority,
            title=f"Test {priority} alert",
            description=f"Seeded {category} alert",
            route="LGW→BCN",
            agent_id=agent_id,
            category=category,
            alert_metadata=metadata,
            status="active",
            impact_score=1000.0 * (4 - i),
            confidence=0.9,
            created_at=now - timedelta(minutes=i),
        )
        test_db.add(alert)
        alerts.append(alert)
    await test_db.commit()
    return alerts
