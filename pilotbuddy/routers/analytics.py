"""
Analytics router: GET /v1/users/me/analytics
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.database import get_db
from pilotbuddy.middleware.auth import get_current_participant
from pilotbuddy.schemas.schemas import AnalyticsResponse, AnalyticsRoleEnum
from pilotbuddy.services.analytics import MAX_DAYS, AnalyticsRole, load_user_analytics
from pilotbuddy.services.state_machine import Participant

router = APIRouter(prefix="/v1/users", tags=["Analytics"])


@router.get("/me/analytics", response_model=AnalyticsResponse)
async def my_analytics(
    role: AnalyticsRoleEnum = Query(default=AnalyticsRoleEnum.pilot),
    days: int = Query(default=30, ge=1, le=MAX_DAYS),
    utc_offset_minutes: int = Query(default=0, ge=-720, le=840),
    db: AsyncSession = Depends(get_db),
    user: Participant = Depends(get_current_participant),
):
    """Daily trips and earnings, rating distribution, top sources and time-of-day buckets."""
    analytics = await load_user_analytics(
        db, user.id, AnalyticsRole(role.value), days=days, utc_offset_minutes=utc_offset_minutes
    )
    return AnalyticsResponse.model_validate(analytics)
