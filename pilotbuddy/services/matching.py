"""
Buddy search: filter and rank the trips currently open for booking.

Pipeline (order matters):
  1. start time within +/- window of the desired time
  2. normalized destination equality
  3. proximity
       flexible: any route waypoint within radius of the chosen pickup
                 (no route -> raw source/destination coordinates)
       exact:    normalized source equality
  4. fare annotation (flexible only): adjusted fare, savings, pickup distance
  5. pilot rating annotation
  6. rank: rating desc, then
       flexible: savings desc, pickup distance asc
       exact:    rating count desc
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.config import get_settings
from pilotbuddy.models.rating import Rating
from pilotbuddy.models.trip import Trip
from pilotbuddy.services.errors import ValidationError
from pilotbuddy.services.geo import LatLng
from pilotbuddy.services.pricing import calculate_adjusted_fare
from pilotbuddy.services.state_machine import TripStatus
from pilotbuddy.services.trips import as_utc, is_near_trip, normalize_place

logger = logging.getLogger(__name__)
settings = get_settings()


class SearchMode(str, Enum):
    EXACT = "exact"
    FLEXIBLE = "flexible"


@dataclass
class SearchQuery:
    mode: SearchMode
    destination: str
    desired_time: datetime
    source: str | None = None
    pickup: LatLng | None = None
    radius_km: float = settings.search_radius_default_km


@dataclass
class TripMatch:
    trip: Trip
    average_rating: float = 0.0
    rating_count: int = 0
    adjusted_fare: Decimal | None = None
    savings: Decimal | None = None
    pickup_distance_km: float | None = None


def validate_query(query: SearchQuery) -> None:
    if not query.destination or not query.destination.strip():
        raise ValidationError("Destination is required")
    if query.desired_time is None:
        raise ValidationError("Desired time is required")
    if query.mode == SearchMode.EXACT:
        if not query.source or not query.source.strip():
            raise ValidationError("Source is required for exact search")
    elif query.pickup is None:
        raise ValidationError("Pickup point is required for flexible search")
    if not settings.search_radius_min_km <= query.radius_km <= settings.search_radius_max_km:
        raise ValidationError(
            f"Radius must be between {settings.search_radius_min_km:g} and {settings.search_radius_max_km:g} km"
        )


def within_window(trip: Trip, desired: datetime, window: timedelta) -> bool:
    if trip.start_time is None:
        return False
    return abs(as_utc(trip.start_time) - as_utc(desired)) <= window


def _annotate_fare(match: TripMatch, pickup: LatLng) -> None:
    trip = match.trip
    if trip.source_lat is None or trip.source_lng is None:
        match.adjusted_fare = Decimal(str(trip.base_fare))
        match.savings = Decimal("0.00")
        return
    adjusted, savings, distance_km = calculate_adjusted_fare(
        trip.base_fare, trip.rate_per_km, pickup, (trip.source_lat, trip.source_lng)
    )
    match.adjusted_fare = adjusted
    match.savings = savings
    match.pickup_distance_km = round(distance_km, 3)


def _rank_key(mode: SearchMode):
    if mode == SearchMode.FLEXIBLE:
        def key(m: TripMatch):
            distance = m.pickup_distance_km if m.pickup_distance_km is not None else float("inf")
            return (-m.average_rating, -(m.savings or 0), distance)
    else:
        def key(m: TripMatch):
            return (-m.average_rating, -m.rating_count)
    return key


def rank_trips(
    trips: list[Trip],
    query: SearchQuery,
    pilot_ratings: dict[str, tuple[float, int]],
) -> list[TripMatch]:
    """Pure filter/annotate/rank over already-loaded available trips."""
    window = timedelta(minutes=settings.match_window_minutes)
    destination = normalize_place(query.destination)

    candidates = [t for t in trips if within_window(t, query.desired_time, window)]
    candidates = [t for t in candidates if normalize_place(t.destination) == destination]

    if query.mode == SearchMode.FLEXIBLE:
        radius_m = query.radius_km * 1000
        candidates = [t for t in candidates if is_near_trip(t, query.pickup, radius_m)]
    else:
        source = normalize_place(query.source)
        candidates = [t for t in candidates if normalize_place(t.source) == source]

    matches = [TripMatch(trip=t) for t in candidates]

    if query.mode == SearchMode.FLEXIBLE:
        for match in matches:
            _annotate_fare(match, query.pickup)

    for match in matches:
        match.average_rating, match.rating_count = pilot_ratings.get(match.trip.pilot_id, (0.0, 0))

    matches.sort(key=_rank_key(query.mode))
    return matches


async def load_pilot_ratings(db: AsyncSession, pilot_ids: list[str]) -> dict[str, tuple[float, int]]:
    if not pilot_ids:
        return {}
    result = await db.execute(
        select(Rating.rated_user_id, func.avg(Rating.score), func.count(Rating.id))
        .where(Rating.rated_user_id.in_(pilot_ids))
        .group_by(Rating.rated_user_id)
    )
    ratings = {}
    for user_id, average, count in result.all():
        rounded = Decimal(str(average)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        ratings[user_id] = (float(rounded), int(count))
    return ratings


async def search_trips(db: AsyncSession, query: SearchQuery) -> list[TripMatch]:
    """
    Rank available trips for a buddy. An empty list means no pilots were found;
    it is not an error.
    """
    validate_query(query)
    window = timedelta(minutes=settings.match_window_minutes)
    desired = as_utc(query.desired_time)

    result = await db.execute(
        select(Trip).where(
            Trip.status == TripStatus.AVAILABLE.value,
            Trip.start_time >= desired - window,
            Trip.start_time <= desired + window,
        )
    )
    trips = list(result.scalars().all())

    ratings = await load_pilot_ratings(db, sorted({t.pilot_id for t in trips}))
    matches = rank_trips(trips, query, ratings)
    logger.info(
        "Search mode=%s dest=%r: %d available, %d matched",
        query.mode.value, query.destination, len(trips), len(matches),
    )
    return matches
