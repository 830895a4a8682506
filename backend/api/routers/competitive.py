"""
Competitive Router — fare observations and price positioning per route.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import api_rate_limit, get_context, get_db
from competitive.service import CompetitivePosition, CompetitivePricingService, PricedRoute
from core.context import AppContext

router = APIRouter(prefix="/api/competitive", tags=["competitive"], dependencies=[Depends(api_rate_limit)])


class PricingObservationResponse(BaseModel):
    id: UUID
    observation_date: date
    route: str
    airline_code: str
    flight_date: date
    flight_number: str | None
    price_amount: float | None
    price_currency: str
    fare_type: str | None
    booking_class: str | None
    availability_seats: int | None

    model_config = ConfigDict(from_attributes=True)


def get_pricing_service(
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> CompetitivePricingService:
    return CompetitivePricingService(db, context.settings)


@router.get("/routes", response_model=list[PricedRoute])
async def list_priced_routes(service: CompetitivePricingService = Depends(get_pricing_service)):
    return await service.available_routes()


@router.get("/pricing/{route}", response_model=list[PricingObservationResponse])
async def get_route_pricing(
    route: str,
    days: int = Query(7, ge=1, le=365),
    service: CompetitivePricingService = Depends(get_pricing_service),
):
    rows = await service.route_pricing(route, days)
    return [PricingObservationResponse.model_validate(r) for r in rows]


@router.get("/position/{route}", response_model=CompetitivePosition)
async def get_competitive_position(
    route: str,
    days: int = Query(7, ge=1, le=365),
    service: CompetitivePricingService = Depends(get_pricing_service),
):
    """Our average fare against the competitor average; nulls when there is no data."""
    return await service.competitive_position(route, days)
