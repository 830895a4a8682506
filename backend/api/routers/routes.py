"""
Routes Router — dated route performance snapshots.
"""

from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.schemas import RoutePerformanceResponse
from api.deps import api_rate_limit, get_db
from db.models import RoutePerformance

router = APIRouter(prefix="/api/routes", tags=["routes"], dependencies=[Depends(api_rate_limit)])


@router.get("/performance", response_model=list[RoutePerformanceResponse])
async def get_route_performance(
    route: str | None = None,
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Snapshots from the last `days` days, newest first."""
    since = date.today() - timedelta(days=days)
    query = select(RoutePerformance).where(RoutePerformance.date >= since)
    if route:
        query = query.where(RoutePerformance.route == route)
    query = query.order_by(RoutePerformance.date.desc(), RoutePerformance.route)
    result = await db.execute(query)
    return [RoutePerformanceResponse.model_validate(r) for r in result.scalars().all()]
