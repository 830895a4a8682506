"""
Seed Demo Data — agents, a week of route performance and competitor fares, and a few sample alerts.

Run: python scripts/seed_demo_data.py
"""

import asyncio
import os
import random
import sys
from datetime import date, datetime, timedelta

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from sqlalchemy import select

from agents.service import SCENARIOS, AgentService
from alerts.schemas import AlertCreate
from alerts.service import AlertService
from core.config import get_settings
from core.context import AppContext
from db.models import CompetitivePricing, RoutePerformance

logger = structlog.get_logger()

# (route, name, base yield £, base load factor %)
ROUTES = [
    ("LGW-BCN", "London Gatwick → Barcelona", 78.0, 86.0),
    ("LGW-MAD", "London Gatwick → Madrid", 71.0, 79.0),
    ("LGW-CDG", "London Gatwick → Paris", 64.0, 83.0),
    ("LGW-FCO", "London Gatwick → Rome", 82.0, 81.0),
    ("STN-BCN", "London Stansted → Barcelona", 69.0, 88.0),
    ("STN-AMS", "London Stansted → Amsterdam", 66.0, 89.0),
]
DAYS = 7

# carrier code -> fare multiplier against our base yield
CARRIERS = {"U2": 1.0, "FR": 0.82, "W6": 0.86, "VY": 0.95, "BA": 1.35}


def build_route_snapshots(rng: random.Random, today: date | None = None) -> list[RoutePerformance]:
    today = today or date.today()
    rows = []
    for offset in range(DAYS):
        day = today - timedelta(days=offset)
        for route, name, base_yield, base_lf in ROUTES:
            our_price = round(base_yield * rng.uniform(1.05, 1.25), 2)
            rows.append(
                RoutePerformance(
                    route=route,
                    route_name=name,
                    date=day,
                    yield_per_pax=round(base_yield * rng.uniform(0.92, 1.08), 2),
                    load_factor=round(min(100.0, base_lf * rng.uniform(0.94, 1.06)), 1),
                    performance=round(rng.uniform(-8.0, 8.0), 1),
                    competitor_price=round(our_price * rng.uniform(0.8, 1.1), 2),
                    our_price=our_price,
                    demand_index=round(rng.uniform(0.8, 1.3), 2),
                )
            )
    return rows


def build_pricing_observations(rng: random.Random, today: date | None = None) -> list[CompetitivePricing]:
    """One fare per carrier per route per day, for a flight two weeks out."""
    today = today or date.today()
    rows = []
    for offset in range(DAYS):
        observed = today - timedelta(days=offset)
        for route, _, base_yield, _ in ROUTES:
            for number, (carrier, multiplier) in enumerate(CARRIERS.items(), start=1):
                rows.append(
                    CompetitivePricing(
                        observation_date=observed,
                        route=route,
                        airline_code=carrier,
                        flight_date=observed + timedelta(days=14),
                        flight_number=f"{carrier}{8000 + number * 10 + offset}",
                        price_amount=round(base_yield * multiplier * rng.uniform(0.9, 1.1), 2),
                        price_currency="GBP",
                        fare_type="standard",
                        booking_class="Y",
                        availability_seats=rng.randint(5, 60),
                        data_source="demo",
                    )
                )
    return rows


async def seed_data(context: AppContext, rng: random.Random | None = None) -> dict:
    """Create demo data; route snapshots and fares already present for a day are left alone."""
    rng = rng or random.Random(42)
    await context.create_tables()

    async with context.session_factory() as db:
        agents_created = await AgentService(db, context.relay, context.settings).initialize_agents()

        result = await db.execute(select(RoutePerformance.route, RoutePerformance.date))
        existing = {(route, day) for route, day in result.all()}
        snapshots = [r for r in build_route_snapshots(rng) if (r.route, r.date) not in existing]
        db.add_all(snapshots)

        result = await db.execute(select(CompetitivePricing.route, CompetitivePricing.observation_date).distinct())
        observed = {(route, day) for route, day in result.all()}
        fares = [f for f in build_pricing_observations(rng) if (f.route, f.observation_date) not in observed]
        db.add_all(fares)
        await db.commit()

        alerts = AlertService(db, context.relay, context.settings)
        alert_count = 0
        for agent_id, (_, payload) in SCENARIOS.items():
            await alerts.create_alert(AlertCreate.model_validate({**payload, "agent_id": agent_id}))
            alert_count += 1

    summary = {
        "agents_created": agents_created,
        "route_snapshots": len(snapshots),
        "pricing_observations": len(fares),
        "alerts": alert_count,
        "seeded_at": datetime.utcnow().isoformat(),
    }
    logger.info("seed.complete", **summary)
    return summary


async def main():
    context = AppContext.from_settings(get_settings())
    try:
        await seed_data(context)
    finally:
        await context.aclose()


if __name__ == "__main__":
    asyncio.run(main())
