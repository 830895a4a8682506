"""
Dashboard Router — headline summary for the landing page.
"""

from fastapi import APIRouter, Depends

from alerts.schemas import DashboardSummary
from alerts.service import AlertService
from api.deps import api_rate_limit, get_alert_service

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(api_rate_limit)])


@router.get("/summary", response_model=DashboardSummary)
async def get_summary(service: AlertService = Depends(get_alert_service)):
    return await service.dashboard_summary()
