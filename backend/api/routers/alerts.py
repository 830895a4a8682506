"""
Alerts Router — list, create and transition alerts.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from alerts.schemas import AlertCreate, AlertResponse, AlertStatusUpdate
from alerts.service import AlertService
from api.deps import api_rate_limit, get_alert_service

router = APIRouter(prefix="/api/alerts", tags=["alerts"], dependencies=[Depends(api_rate_limit)])


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    priority: str | None = None,
    limit: int | None = None,
    service: AlertService = Depends(get_alert_service),
):
    """Most recent alerts first. `limit` defaults to 50 and must be 1..1500."""
    alerts = await service.list_alerts(priority=priority, limit=limit)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.post("", response_model=AlertResponse, status_code=status.HTTP_201_CREATED)
async def create_alert(
    body: AlertCreate,
    service: AlertService = Depends(get_alert_service),
):
    alert = await service.create_alert(body)
    return AlertResponse.model_validate(alert)


@router.patch("/{alert_id}/status", status_code=status.HTTP_204_NO_CONTENT)
async def update_alert_status(
    alert_id: UUID,
    body: AlertStatusUpdate,
    service: AlertService = Depends(get_alert_service),
):
    """Dismiss or escalate an alert."""
    await service.update_status(alert_id, body.status)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
