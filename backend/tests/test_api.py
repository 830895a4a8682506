"""
API Tests — Smoke tests for health, dashboard, routes, activities and the error boundary.
"""

from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from api.main import create_app
from core.context import AppContext
from db.models import Activity, RoutePerformance


@pytest.mark.asyncio
class TestHealthCheck:
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    async def test_health_check(self, client: AsyncClient, path):
        response = await client.get(path)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "test"


@pytest.mark.asyncio
class TestDashboardAPI:
    async def test_summary_shape(self, client: AsyncClient, seeded_alerts):
        response = await client.get("/api/dashboard/summary")
        assert response.status_code == 200
        data = response.json()
        assert data["alerts"]["total"] == 4
        assert data["alerts"]["critical"] == 1
        assert len(data["alerts"]["recent"]) == 3
        assert len(data["agents"]) == 3
        assert data["metrics"]["network_yield"] is None
        assert isinstance(data["activities"], list)

    async def test_summary_on_empty_database(self, client: AsyncClient):
        data = (await client.get("/api/dashboard/summary")).json()
        assert data["alerts"] == {"total": 0, "critical": 0, "recent": []}


@pytest.mark.asyncio
class TestRoutesAPI:
    @pytest.fixture
    async def snapshots(self, test_db):
        today = date.today()
        test_db.add_all(
            [
                RoutePerformance(
                    route="LGW-BCN",
                    route_name="London Gatwick → Barcelona",
                    date=today - timedelta(days=offset),
                    yield_per_pax=75.0 + offset,
                    load_factor=85.0,
                )
                for offset in (0, 1, 2, 20)
            ]
            + [RoutePerformance(route="STN-AMS", route_name="London Stansted → Amsterdam", date=today, yield_per_pax=66.0)]
        )
        await test_db.commit()

    async def test_recent_snapshots_newest_first(self, client: AsyncClient, snapshots):
        response = await client.get("/api/routes/performance?route=LGW-BCN")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 3
        assert data[0]["date"] == date.today().isoformat()
        assert data[0]["yield"] == 75.0
        assert data[0]["route_name"] == "London Gatwick → Barcelona"

    async def test_all_routes(self, client: AsyncClient, snapshots):
        data = (await client.get("/api/routes/performance")).json()
        assert {r["route"] for r in data} == {"LGW-BCN", "STN-AMS"}

    async def test_days_window(self, client: AsyncClient, snapshots):
        data = (await client.get("/api/routes/performance?route=LGW-BCN&days=30")).json()
        assert len(data) == 4

    async def test_invalid_days(self, client: AsyncClient):
        response = await client.get("/api/routes/performance?days=0")
        assert response.status_code == 400


@pytest.mark.asyncio
class TestActivitiesAPI:
    async def test_recent_activities(self, client: AsyncClient, test_db):
        test_db.add_all([Activity(type="analysis", title=f"Run {i}", agent_id="network") for i in range(25)])
        await test_db.commit()

        response = await client.get("/api/activities")
        assert response.status_code == 200
        assert len(response.json()) == 20

        response = await client.get("/api/activities?limit=5")
        assert len(response.json()) == 5


@pytest.mark.asyncio
class TestErrorBoundary:
    async def _get_boom(self, settings):
        context = AppContext.from_settings(settings)
        app = create_app(context=context)

        async def boom():
            raise RuntimeError("database exploded")

        app.add_api_route("/api/boom", boom)
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                return await ac.get("/api/boom")
        finally:
            await context.aclose()

    async def test_unhandled_error_includes_detail_outside_production(self, settings):
        response = await self._get_boom(settings)
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Internal Server Error"
        assert body["detail"] == "database exploded"
        assert body["path"] == "/api/boom"

    async def test_unhandled_error_hides_detail_in_production(self, settings):
        response = await self._get_boom(settings.model_copy(update={"app_env": "production"}))
        assert response.status_code == 500
        assert "detail" not in response.json()

    async def test_unknown_route(self, client: AsyncClient):
        response = await client.get("/api/nowhere")
        assert response.status_code == 404
