"""
Agent worker and demo seeding — the periodic pass and the seed script.
"""

import pytest
from sqlalchemy import func, select

from db.models import ActionAgentExecution, Alert, CompetitivePricing, RoutePerformance
from scripts.seed_demo_data import CARRIERS, DAYS, ROUTES, build_route_snapshots, seed_data
from workers.agents import run_agents_once


@pytest.mark.asyncio
class TestRunAgentsOnce:
    async def test_runs_every_active_agent(self, context, test_db, fixed_random):
        summary = await run_agents_once(context, rng=fixed_random(0.0))

        assert summary["status"] == "success"
        assert summary["agents_run"] == 3
        assert summary["alerts_generated"] == 3
        executions = (await test_db.execute(select(func.count()).select_from(ActionAgentExecution))).scalar()
        assert executions == 3

    async def test_quiet_pass(self, context, fixed_random):
        summary = await run_agents_once(context, rng=fixed_random(0.99))
        assert summary["alerts_generated"] == 0
        assert summary["agents"] == {"competitive": 0, "network": 0, "performance": 0}


@pytest.mark.asyncio
class TestSeedDemoData:
    async def test_seed_is_repeatable_for_route_snapshots(self, context, test_db):
        first = await seed_data(context)
        second = await seed_data(context)

        assert first["agents_created"] == 0
        assert first["route_snapshots"] == DAYS * len(ROUTES)
        assert second["route_snapshots"] == 0
        assert first["pricing_observations"] == DAYS * len(ROUTES) * len(CARRIERS)
        assert second["pricing_observations"] == 0
        snapshots = (await test_db.execute(select(func.count()).select_from(RoutePerformance))).scalar()
        assert snapshots == DAYS * len(ROUTES)
        fares = (await test_db.execute(select(func.count()).select_from(CompetitivePricing))).scalar()
        assert fares == DAYS * len(ROUTES) * len(CARRIERS)
        alerts = (await test_db.execute(select(func.count()).select_from(Alert))).scalar()
        assert alerts == 6


def test_route_snapshots_are_plausible():
    import random

    rows = build_route_snapshots(random.Random(1))
    assert len(rows) == DAYS * len(ROUTES)
    assert all(0 < r.load_factor <= 100 for r in rows)
    assert all(r.yield_per_pax > 0 for r in rows)
