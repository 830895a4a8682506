"""
Competitive Pricing Service — observed competitor fares per route.

Fare observations land in `competitive_pricing`, one row per carrier flight
per observation day. This service answers three questions for the analyst:
which routes have data, what the recent fares look like, and where our own
carrier sits against the competition on price.
"""

from datetime import date, timedelta

import structlog
from pydantic import BaseModel
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from db.models import CompetitivePricing

logger = structlog.get_logger()


class PricedRoute(BaseModel):
    route: str
    records: int
    carriers: int
    latest_observation: date


class CompetitivePosition(BaseModel):
    route: str
    days: int
    our_price: float | None
    competitor_avg_price: float | None
    price_advantage: float | None
    price_rank: int | None
    competitor_count: int
    airlines: list[str]
    total_records: int


class CompetitivePricingService:
    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    @staticmethod
    def _since(days: int) -> date:
        return date.today() - timedelta(days=days)

    async def available_routes(self) -> list[PricedRoute]:
        """Routes with at least one fare observation, alphabetically."""
        result = await self.db.execute(
            select(
                CompetitivePricing.route,
                func.count(CompetitivePricing.id),
                func.count(distinct(CompetitivePricing.airline_code)),
                func.max(CompetitivePricing.observation_date),
            )
            .group_by(CompetitivePricing.route)
            .order_by(CompetitivePricing.route)
        )
        return [
            PricedRoute(route=route, records=records, carriers=carriers, latest_observation=latest)
            for route, records, carriers, latest in result.all()
        ]

    async def route_pricing(self, route: str, days: int = 7) -> list[CompetitivePricing]:
        """Observations for route over the last `days` days, newest first then cheapest."""
        result = await self.db.execute(
            select(CompetitivePricing)
            .where(CompetitivePricing.route == route, CompetitivePricing.observation_date >= self._since(days))
            .order_by(
                CompetitivePricing.observation_date.desc(),
                CompetitivePricing.price_amount,
                CompetitivePricing.airline_code,
            )
        )
        return list(result.scalars().all())

    async def competitive_position(self, route: str, days: int = 7) -> CompetitivePosition:
        """
        Average fares for our carrier versus everyone else on route.

        price_advantage is competitor average minus ours (positive means we
        are cheaper); price_rank is our position among per-airline averages,
        cheapest first. Both are None when either side has no priced rows.
        """
        home = self.settings.home_airline_code
        result = await self.db.execute(
            select(
                CompetitivePricing.airline_code,
                func.sum(CompetitivePricing.price_amount),
                func.count(CompetitivePricing.price_amount),
                func.count(CompetitivePricing.id),
            )
            .where(CompetitivePricing.route == route, CompetitivePricing.observation_date >= self._since(days))
            .group_by(CompetitivePricing.airline_code)
        )
        rows = result.all()

        averages: dict[str, float] = {}
        competitor_total = 0.0
        competitor_priced = 0
        total_records = 0
        for airline, price_sum, priced, records in rows:
            total_records += records
            if priced:
                averages[airline] = price_sum / priced
            if airline != home:
                competitor_total += price_sum or 0.0
                competitor_priced += priced

        our_price = averages.get(home)
        competitor_avg = competitor_total / competitor_priced if competitor_priced else None
        ranking = sorted(averages, key=lambda code: (averages[code], code))

        position = CompetitivePosition(
            route=route,
            days=days,
            our_price=round(our_price, 2) if our_price is not None else None,
            competitor_avg_price=round(competitor_avg, 2) if competitor_avg is not None else None,
            price_advantage=(
                round(competitor_avg - our_price, 2) if our_price is not None and competitor_avg is not None else None
            ),
            price_rank=ranking.index(home) + 1 if home in averages else None,
            competitor_count=sum(1 for airline, *_ in rows if airline != home),
            airlines=sorted(airline for airline, *_ in rows),
            total_records=total_records,
        )
        if total_records == 0:
            logger.warning("competitive.no_pricing_data", route=route, days=days)
        return position
