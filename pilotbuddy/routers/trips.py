"""
Trips router: pilot side of the lifecycle.

POST /v1/trips                         create (routes + samples pickup points once)
GET  /v1/trips/pending|accepted        pilot's trips awaiting action
GET  /v1/trips/finished                pilot's finished history (retention applied)
GET  /v1/trips/{id}                    single trip
POST /v1/trips/{id}/accept|start|finish|cancel
POST /v1/trips/{id}/payment/initiate   pilot asks the buddy to pay
POST /v1/trips/{id}/payment/complete   buddy reports payment done
GET  /v1/trips/{id}/events             lifecycle feed (poll with ?after=<id>)
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.database import get_db
from pilotbuddy.middleware.auth import get_current_participant
from pilotbuddy.redis_client import get_redis, read_trip_events
from pilotbuddy.schemas.schemas import (
    TripCreateRequest, TripResponse, TripStatusResponse, TripEventResponse,
)
from pilotbuddy.services import notifications
from pilotbuddy.services import trips as trip_service
from pilotbuddy.services.retention import list_finished_trips
from pilotbuddy.services.routing import RoutingClient, get_routing_client
from pilotbuddy.services.state_machine import Participant, TripStatus

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/trips", tags=["Trips"])


def _status(trip) -> TripStatusResponse:
    return TripStatusResponse(trip_id=trip.id, status=trip.status, payment_status=trip.payment_status)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TripResponse)
async def create_trip(
    payload: TripCreateRequest,
    db: AsyncSession = Depends(get_db),
    routing: RoutingClient = Depends(get_routing_client),
    pilot: Participant = Depends(get_current_participant),
):
    trip = await trip_service.create_trip(
        db,
        routing,
        pilot,
        source=payload.source,
        destination=payload.destination,
        start_time=payload.start_time,
        source_coords=(payload.source_lat, payload.source_lng),
        dest_coords=(payload.dest_lat, payload.dest_lng),
        distance_km=payload.distance_km,
        pickup_point_ids=payload.pickup_point_ids,
    )
    return TripResponse.model_validate(trip)


@router.get("/pending", response_model=list[TripResponse])
async def list_pending(
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trips = await trip_service.list_pilot_trips(db, pilot.id, TripStatus.PENDING.value)
    return [TripResponse.model_validate(t) for t in trips]


@router.get("/accepted", response_model=list[TripResponse])
async def list_accepted(
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trips = await trip_service.list_pilot_trips(db, pilot.id, TripStatus.ACCEPTED.value)
    return [TripResponse.model_validate(t) for t in trips]


@router.get("/finished", response_model=list[TripResponse])
async def list_finished(
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trips = await list_finished_trips(db, pilot.id)
    return [TripResponse.model_validate(t) for t in trips]


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    user: Participant = Depends(get_current_participant),
):
    return TripResponse.model_validate(await trip_service.get_trip(db, trip_id))


@router.post("/{trip_id}/accept", response_model=TripStatusResponse)
async def accept_booking(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trip = await trip_service.accept_booking(db, trip_id, pilot.id)
    await notifications.notify(
        trip.id, notifications.BOOKING_ACCEPTED, pilot_name=trip.pilot_name, buddy_id=trip.buddy_id
    )
    return _status(trip)


@router.post("/{trip_id}/start", response_model=TripStatusResponse)
async def start_trip(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trip = await trip_service.start_trip(db, trip_id, pilot.id)
    pickup = trip.buddy_pickup["name"] if trip.buddy_pickup else trip.source
    await notifications.notify(
        trip.id, notifications.TRIP_STARTED, pilot_name=trip.pilot_name, pickup=pickup
    )
    return _status(trip)


@router.post("/{trip_id}/finish", response_model=TripStatusResponse)
async def finish_trip(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trip = await trip_service.finish_trip(db, trip_id, pilot.id)
    await notifications.notify(trip.id, notifications.TRIP_FINISHED, finished_at=trip.finished_at)
    return _status(trip)


@router.post("/{trip_id}/cancel", response_model=TripStatusResponse)
async def cancel_trip(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trip = await trip_service.cancel_trip(db, trip_id, pilot.id)
    await notifications.notify(trip.id, notifications.TRIP_CANCELLED)
    return _status(trip)


@router.post("/{trip_id}/payment/initiate", response_model=TripStatusResponse)
async def initiate_payment(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    pilot: Participant = Depends(get_current_participant),
):
    trip = await trip_service.initiate_payment(db, trip_id, pilot.id)
    await notifications.notify(trip.id, notifications.PAYMENT_INITIATED, amount=trip.adjusted_fare or trip.base_fare)
    return _status(trip)


@router.post("/{trip_id}/payment/complete", response_model=TripStatusResponse)
async def complete_payment(
    trip_id: str,
    db: AsyncSession = Depends(get_db),
    buddy: Participant = Depends(get_current_participant),
):
    trip, finished_now = await trip_service.complete_payment(db, trip_id, buddy.id)
    await notifications.notify(trip.id, notifications.PAYMENT_COMPLETED, buddy_id=buddy.id)
    if finished_now:
        await notifications.notify(trip.id, notifications.TRIP_FINISHED, finished_at=trip.finished_at)
    return _status(trip)


@router.get("/{trip_id}/events", response_model=list[TripEventResponse])
async def poll_trip_events(
    trip_id: str,
    after: str | None = Query(default=None, description="Return entries after this event id"),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: Participant = Depends(get_current_participant),
):
    await trip_service.ensure_participant(db, trip_id, user.id)
    redis = await get_redis()
    events = await read_trip_events(redis, trip_id, after=after, count=limit)
    return [TripEventResponse(**e) for e in events]
