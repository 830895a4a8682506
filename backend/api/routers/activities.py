"""
Activities Router — recent activity log.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.schemas import ActivityResponse
from api.deps import api_rate_limit, get_db
from db.models import Activity

router = APIRouter(prefix="/api/activities", tags=["activities"], dependencies=[Depends(api_rate_limit)])


@router.get("", response_model=list[ActivityResponse])
async def list_activities(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Activity).order_by(Activity.created_at.desc()).limit(limit))
    return [ActivityResponse.model_validate(a) for a in result.scalars().all()]
