"""
Ratings router: POST /v1/trips/{id}/ratings, GET /v1/users/{id}/rating
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.database import get_db
from pilotbuddy.middleware.auth import get_current_participant
from pilotbuddy.schemas.schemas import RatingRequest, RatingResponse, UserRatingResponse
from pilotbuddy.services.ratings import get_user_aggregate, submit_rating
from pilotbuddy.services.state_machine import Participant

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1", tags=["Ratings"])


@router.post("/trips/{trip_id}/ratings", status_code=status.HTTP_201_CREATED, response_model=RatingResponse)
async def rate_trip(
    trip_id: str,
    payload: RatingRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    rater: Participant = Depends(get_current_participant),
):
    """
    Rate the other participant of a completed trip. Re-submitting returns the
    rating already stored (200) without counting it again.
    """
    rating, created = await submit_rating(db, trip_id, rater, payload.score, payload.comment)
    if not created:
        response.status_code = status.HTTP_200_OK
    return RatingResponse.model_validate(rating)


@router.get("/users/{user_id}/rating", response_model=UserRatingResponse)
async def user_rating(user_id: str, db: AsyncSession = Depends(get_db)):
    return UserRatingResponse.model_validate(await get_user_aggregate(db, user_id))
