"""
Bookings router: buddy side.

POST /v1/bookings/search   rank available trips (exact or flexible pickup)
POST /v1/bookings          book a trip (available -> pending)
GET  /v1/bookings          the buddy's booking history
GET  /v1/bookings/current  the buddy's accepted / started trip
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.database import get_db
from pilotbuddy.middleware.auth import get_current_participant
from pilotbuddy.schemas.schemas import (
    SearchRequest, SearchResponse, TripMatchResponse, TripResponse,
    BookingRequest, BookingResponse,
)
from pilotbuddy.services import notifications
from pilotbuddy.services import trips as trip_service
from pilotbuddy.services.matching import SearchMode, SearchQuery, search_trips
from pilotbuddy.services.state_machine import Participant

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/bookings", tags=["Bookings"])


@router.post("/search", response_model=SearchResponse)
async def search(
    payload: SearchRequest,
    db: AsyncSession = Depends(get_db),
    buddy: Participant = Depends(get_current_participant),
):
    pickup = None
    if payload.pickup_lat is not None and payload.pickup_lng is not None:
        pickup = (payload.pickup_lat, payload.pickup_lng)

    matches = await search_trips(
        db,
        SearchQuery(
            mode=SearchMode(payload.mode.value),
            destination=payload.destination,
            desired_time=payload.desired_time,
            source=payload.source,
            pickup=pickup,
            radius_km=payload.radius_km,
        ),
    )
    results = [
        TripMatchResponse(
            trip=TripResponse.model_validate(m.trip),
            average_rating=m.average_rating,
            rating_count=m.rating_count,
            adjusted_fare=m.adjusted_fare,
            savings=m.savings,
            pickup_distance_km=m.pickup_distance_km,
        )
        for m in matches
    ]
    message = None if results else "No pilots found for this route and time."
    return SearchResponse(results=results, message=message)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BookingResponse)
async def book_trip(
    payload: BookingRequest,
    db: AsyncSession = Depends(get_db),
    buddy: Participant = Depends(get_current_participant),
):
    pickup = payload.pickup_point.model_dump() if payload.pickup_point else None
    trip, booking = await trip_service.book_trip(db, payload.trip_id, buddy, pickup_point=pickup)
    await notifications.notify(
        trip.id,
        notifications.BOOKING_REQUESTED,
        buddy_id=buddy.id,
        buddy_name=buddy.name,
        pickup=pickup["name"] if pickup else trip.source,
        fare=booking.fare,
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=list[BookingResponse])
async def my_bookings(
    db: AsyncSession = Depends(get_db),
    buddy: Participant = Depends(get_current_participant),
):
    bookings = await trip_service.list_buddy_bookings(db, buddy.id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/current", response_model=TripResponse | None)
async def my_current_trip(
    db: AsyncSession = Depends(get_db),
    buddy: Participant = Depends(get_current_participant),
):
    trip = await trip_service.current_buddy_trip(db, buddy.id)
    return TripResponse.model_validate(trip) if trip else None
