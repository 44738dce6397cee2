"""
Trip lifecycle service: create, book, accept, start, finish, pay, cancel.

Every mutation locks the trip row (SELECT ... FOR UPDATE), applies the state
machine in memory and commits once. Anything raised before the commit is
discarded with the session, so no reader sees a half-applied transition.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.config import get_settings
from pilotbuddy.models.booking import Booking
from pilotbuddy.models.trip import Trip
from pilotbuddy.models.trip_event import TripEvent
from pilotbuddy.services import state_machine as sm
from pilotbuddy.services.errors import Forbidden, NotFound, RoutingUnavailable, ValidationError
from pilotbuddy.services.geo import LatLng, is_near_polyline
from pilotbuddy.services.pricing import calculate_adjusted_fare, calculate_base_fare
from pilotbuddy.services.route_sampler import END, START, build_pickup_points
from pilotbuddy.services.state_machine import Participant, TripStatus

logger = logging.getLogger(__name__)
settings = get_settings()

TRIP_COMPLETED = "trip_completed"
PAYMENT_COMPLETED = "payment_completed"

FINAL_BOOKING_STATUSES = (TripStatus.FINISHED.value, TripStatus.CANCELLED.value)


def normalize_place(text: str) -> str:
    return text.strip().lower()


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def select_pickup_candidates(route: list[dict], pickup_point_ids: list[str] | None) -> list[dict]:
    """Subset of the route the pilot exposes; start and end are always kept."""
    if pickup_point_ids is None:
        return list(route)
    known = {p["id"] for p in route}
    unknown = set(pickup_point_ids) - known
    if unknown:
        raise ValidationError(f"Unknown pickup points: {', '.join(sorted(unknown))}")
    wanted = set(pickup_point_ids) | {START, END}
    return [p for p in route if p["id"] in wanted]


def is_near_trip(trip: Trip, pickup: LatLng, radius_m: float) -> bool:
    """Any route waypoint within `radius_m`; trips without a route fall back to their endpoints."""
    if trip.route:
        return is_near_polyline(pickup, trip.route, radius_m)
    endpoints = [
        {"lat": lat, "lng": lng}
        for lat, lng in ((trip.source_lat, trip.source_lng), (trip.dest_lat, trip.dest_lng))
        if lat is not None and lng is not None
    ]
    return is_near_polyline(pickup, endpoints, radius_m)


async def resolve_place(routing, text: str, lat: float | None, lng: float | None):
    if lat is not None and lng is not None:
        return lat, lng
    try:
        return await routing.geocode(text)
    except RoutingUnavailable:
        logger.warning("Geocoding failed for %r", text)
        return None


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def create_trip(
    db: AsyncSession,
    routing,
    pilot: Participant,
    source: str,
    destination: str,
    start_time: datetime | None,
    source_coords: tuple[float | None, float | None] = (None, None),
    dest_coords: tuple[float | None, float | None] = (None, None),
    distance_km: float | None = None,
    pickup_point_ids: list[str] | None = None,
) -> Trip:
    """
    Route and sample the trip once, price it and persist it as available.
    Without a route the trip is still created but supports exact-match only.
    """
    if not source or not source.strip() or not destination or not destination.strip():
        raise ValidationError("Source and destination are required")
    if start_time is None:
        raise ValidationError("Trip start time is required")

    origin = await resolve_place(routing, source, *source_coords)
    target = await resolve_place(routing, destination, *dest_coords)

    route_result, route = None, []
    if origin and target:
        route_result, route = await build_pickup_points(
            routing, origin, target, settings.pilot_pickup_step_m,
            start_name=source.strip(), end_name=destination.strip(),
        )

    if route_result is not None:
        distance_km = route_result.leg_distance_m / 1000
        origin, target = route_result.start, route_result.end
    elif distance_km is None:
        raise ValidationError("Route unavailable; distance_km is required")

    trip = Trip(
        pilot_id=pilot.id,
        pilot_name=pilot.name,
        pilot_email=pilot.email,
        pilot_phone=pilot.phone,
        source=normalize_place(source),
        destination=normalize_place(destination),
        source_lat=origin[0] if origin else None,
        source_lng=origin[1] if origin else None,
        dest_lat=target[0] if target else None,
        dest_lng=target[1] if target else None,
        start_time=as_utc(start_time),
        route=route,
        pickup_candidates=select_pickup_candidates(route, pickup_point_ids) if route else [],
        distance_km=Decimal(str(round(distance_km, 3))),
        base_fare=calculate_base_fare(distance_km),
        rate_per_km=Decimal(str(settings.rate_per_km)),
        fixed_surcharge=Decimal(str(settings.fixed_surcharge)),
        status=TripStatus.AVAILABLE.value,
        payment_initiated=False,
        payment_status="pending",
    )
    db.add(trip)
    await db.commit()
    await db.refresh(trip)
    logger.info(
        "Trip %s created by pilot=%s (%d waypoints, fare=%s)",
        trip.id, pilot.id, len(route), trip.base_fare,
    )
    return trip


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_trip(db: AsyncSession, trip_id: str) -> Trip:
    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    return trip


async def _lock_trip(db: AsyncSession, trip_id: str) -> Trip:
    result = await db.execute(select(Trip).where(Trip.id == trip_id).with_for_update())
    trip = result.scalar_one_or_none()
    if trip is None:
        raise NotFound("Trip not found")
    return trip


async def list_pilot_trips(db: AsyncSession, pilot_id: str, status: str) -> list[Trip]:
    result = await db.execute(
        select(Trip)
        .where(Trip.pilot_id == pilot_id, Trip.status == status)
        .order_by(Trip.start_time)
    )
    return list(result.scalars().all())


async def current_buddy_trip(db: AsyncSession, buddy_id: str) -> Trip | None:
    """The buddy's accepted or started trip, if any."""
    result = await db.execute(
        select(Trip)
        .where(
            Trip.buddy_id == buddy_id,
            Trip.status.in_([TripStatus.ACCEPTED.value, TripStatus.STARTED.value]),
        )
        .order_by(Trip.start_time)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_buddy_bookings(db: AsyncSession, buddy_id: str) -> list[Booking]:
    result = await db.execute(
        select(Booking).where(Booking.buddy_id == buddy_id).order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

async def _mirror_booking(db: AsyncSession, trip_id: str, status: str) -> None:
    await db.execute(
        update(Booking)
        .where(Booking.trip_id == trip_id, Booking.status.not_in(FINAL_BOOKING_STATUSES))
        .values(status=status)
    )


def _completion_events(trip: Trip, buddy: Participant | None, trigger: str) -> list[TripEvent]:
    """One rating trigger per participant: the pilot rates the buddy and vice versa."""
    if buddy is None:
        return []
    pilot = sm.pilot_of(trip)
    return [
        TripEvent(trip_id=trip.id, type=trigger, rater_id=pilot.id, rater_name=pilot.name,
                  rated_user_id=buddy.id, processed=False),
        TripEvent(trip_id=trip.id, type=trigger, rater_id=buddy.id, rater_name=buddy.name,
                  rated_user_id=pilot.id, processed=False),
    ]


async def book_trip(
    db: AsyncSession,
    trip_id: str,
    buddy: Participant,
    pickup_point: dict | None = None,
) -> tuple[Trip, Booking]:
    """
    available -> pending and a Booking row, in one transaction. The row lock
    serializes competing buddies; whoever commits first wins and the others get
    ConcurrentAssignment.
    """
    trip = await _lock_trip(db, trip_id)

    adjusted = None
    if pickup_point is not None:
        pickup = (pickup_point["lat"], pickup_point["lng"])
        # Same proximity rule search applies, at the widest allowed radius.
        if not is_near_trip(trip, pickup, settings.search_radius_max_km * 1000):
            raise ValidationError("Pickup point is too far from this trip's route")
        if trip.source_lat is not None and trip.source_lng is not None:
            adjusted, _, _ = calculate_adjusted_fare(
                trip.base_fare, trip.rate_per_km, pickup, (trip.source_lat, trip.source_lng)
            )

    sm.book(trip, buddy, pickup_point=pickup_point, adjusted_fare=adjusted)

    booking = Booking(
        trip_id=trip.id,
        pilot_id=trip.pilot_id,
        pilot_name=trip.pilot_name,
        pilot_email=trip.pilot_email,
        pilot_phone=trip.pilot_phone,
        buddy_id=buddy.id,
        buddy_name=buddy.name,
        buddy_email=buddy.email,
        buddy_phone=buddy.phone,
        source=trip.source,
        destination=trip.destination,
        fare=adjusted if adjusted is not None else trip.base_fare,
        flexible_pickup=pickup_point is not None,
        pickup_point=pickup_point,
        status=TripStatus.PENDING.value,
    )
    db.add(booking)
    await db.commit()
    await db.refresh(booking)
    logger.info("Trip %s booked by buddy=%s (booking=%s)", trip.id, buddy.id, booking.id)
    return trip, booking


async def accept_booking(db: AsyncSession, trip_id: str, pilot_id: str) -> Trip:
    trip = await _lock_trip(db, trip_id)
    sm.accept(trip, pilot_id)
    await _mirror_booking(db, trip.id, trip.status)
    await db.commit()
    logger.info("Trip %s accepted by pilot=%s", trip.id, pilot_id)
    return trip


async def start_trip(db: AsyncSession, trip_id: str, pilot_id: str) -> Trip:
    trip = await _lock_trip(db, trip_id)
    sm.start(trip, pilot_id)
    await _mirror_booking(db, trip.id, trip.status)
    await db.commit()
    logger.info("Trip %s started", trip.id)
    return trip


async def finish_trip(db: AsyncSession, trip_id: str, pilot_id: str) -> Trip:
    trip = await _lock_trip(db, trip_id)
    buddy = sm.finish(trip, pilot_id)
    await _mirror_booking(db, trip.id, trip.status)
    db.add_all(_completion_events(trip, buddy, TRIP_COMPLETED))
    await db.commit()
    logger.info("Trip %s finished; buddy=%s cleared", trip.id, buddy.id if buddy else None)
    return trip


async def initiate_payment(db: AsyncSession, trip_id: str, pilot_id: str) -> Trip:
    trip = await _lock_trip(db, trip_id)
    sm.initiate_payment(trip, pilot_id)
    await db.commit()
    return trip


async def _is_participant_buddy(db: AsyncSession, trip: Trip, buddy_id: str) -> bool:
    if trip.buddy_id == buddy_id:
        return True
    result = await db.execute(
        select(Booking.id).where(Booking.trip_id == trip.id, Booking.buddy_id == buddy_id).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def ensure_participant(db: AsyncSession, trip_id: str, user_id: str) -> Trip:
    """The trip, if `user_id` is its pilot, its current buddy or a buddy who booked it."""
    trip = await get_trip(db, trip_id)
    if trip.pilot_id == user_id or await _is_participant_buddy(db, trip, user_id):
        return trip
    raise Forbidden("Only the trip's pilot or buddy can do that")


async def complete_payment(db: AsyncSession, trip_id: str, buddy_id: str) -> tuple[Trip, bool]:
    """
    Buddy reports payment done. Returns (trip, finished_now); finished_now is
    True when this call moved the trip to finished.
    """
    trip = await _lock_trip(db, trip_id)
    if not await _is_participant_buddy(db, trip, buddy_id):
        raise Forbidden("Only the trip's buddy can complete payment")

    was_finished = trip.status == TripStatus.FINISHED.value
    buddy = sm.complete_payment(trip)
    if not was_finished:
        await _mirror_booking(db, trip.id, trip.status)
        db.add_all(_completion_events(trip, buddy, PAYMENT_COMPLETED))
    await db.commit()
    logger.info("Payment completed for trip %s (finished_now=%s)", trip.id, not was_finished)
    return trip, not was_finished


async def cancel_trip(db: AsyncSession, trip_id: str, pilot_id: str) -> Trip:
    trip = await _lock_trip(db, trip_id)
    sm.cancel(trip, pilot_id)
    await _mirror_booking(db, trip.id, trip.status)
    await db.commit()
    logger.info("Trip %s cancelled by pilot=%s", trip.id, pilot_id)
    return trip
