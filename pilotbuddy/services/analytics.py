"""
Per-user activity over the trailing `days` calendar days.

Pilot side: trips posted, earnings from finished bookings.
Buddy side: bookings made (no earnings).
Ratings received count for either side.

Grouping by source and score happens in SQL; day and time-of-day buckets are
built here so they follow the caller's UTC offset.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.models.booking import Booking
from pilotbuddy.models.rating import Rating
from pilotbuddy.models.trip import Trip
from pilotbuddy.services.errors import ValidationError
from pilotbuddy.services.state_machine import TripStatus
from pilotbuddy.services.trips import as_utc

logger = logging.getLogger(__name__)

MAX_DAYS = 365
TOP_SOURCES = 5

# (name, first hour, end hour) in local time
TIME_SLOTS = (
    ("night", 0, 6),
    ("morning", 6, 12),
    ("afternoon", 12, 18),
    ("evening", 18, 24),
)


class AnalyticsRole(str, Enum):
    PILOT = "pilot"
    BUDDY = "buddy"


@dataclass
class UserAnalytics:
    user_id: str
    role: AnalyticsRole
    days: int
    daily_trips: list[dict] = field(default_factory=list)
    daily_earnings: list[dict] = field(default_factory=list)
    rating_distribution: list[dict] = field(default_factory=list)
    top_sources: list[dict] = field(default_factory=list)
    time_of_day: list[dict] = field(default_factory=list)
    total_trips: int = 0
    total_earnings: Decimal = Decimal("0.00")
    average_rating: float = 0.0
    total_ratings: int = 0


def time_slot(hour: int) -> str:
    for name, first, end in TIME_SLOTS:
        if first <= hour < end:
            return name
    raise ValueError(f"hour out of range: {hour}")


def window_days(today: date, days: int) -> list[date]:
    """The last `days` calendar days, oldest first, ending with `today`."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def _local(value: datetime, offset: timedelta) -> datetime:
    return as_utc(value) + offset


def bucket_daily(timestamps: list[datetime], days: list[date], offset: timedelta) -> list[dict]:
    counts = dict.fromkeys(days, 0)
    for ts in timestamps:
        day = _local(ts, offset).date()
        if day in counts:
            counts[day] += 1
    return [{"day": day, "trips": n} for day, n in counts.items()]


def bucket_earnings(rows: list[tuple[datetime, Decimal]], days: list[date], offset: timedelta) -> list[dict]:
    totals = dict.fromkeys(days, Decimal("0.00"))
    for ts, amount in rows:
        day = _local(ts, offset).date()
        if day in totals:
            totals[day] += Decimal(str(amount or 0))
    return [{"day": day, "earnings": amount} for day, amount in totals.items()]


def bucket_time_of_day(timestamps: list[datetime], offset: timedelta) -> list[dict]:
    counts = {name: 0 for name, _, _ in TIME_SLOTS}
    for ts in timestamps:
        counts[time_slot(_local(ts, offset).hour)] += 1
    return [{"slot": name, "trips": n} for name, n in counts.items()]


def rating_distribution(rows: list[tuple[int, int]]) -> list[dict]:
    """Every star value 1..5, zero-filled."""
    counts = {stars: 0 for stars in range(1, 6)}
    for score, n in rows:
        counts[int(score)] = int(n)
    return [{"stars": stars, "count": n} for stars, n in counts.items()]


def summarize_ratings(distribution: list[dict]) -> tuple[float, int]:
    total = sum(b["count"] for b in distribution)
    if not total:
        return 0.0, 0
    weighted = sum(b["stars"] * b["count"] for b in distribution)
    average = (Decimal(weighted) / total).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(average), total


async def load_user_analytics(
    db: AsyncSession,
    user_id: str,
    role: AnalyticsRole,
    days: int = 30,
    utc_offset_minutes: int = 0,
    now: datetime | None = None,
) -> UserAnalytics:
    if not 1 <= days <= MAX_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_DAYS}")

    offset = timedelta(minutes=utc_offset_minutes)
    today = _local(now or datetime.now(timezone.utc), offset).date()
    calendar = window_days(today, days)
    # local midnight of the first day, expressed in UTC
    since = datetime.combine(calendar[0], time.min, tzinfo=timezone.utc) - offset

    if role == AnalyticsRole.PILOT:
        model, owner = Trip, Trip.pilot_id
    else:
        model, owner = Booking, Booking.buddy_id

    result = await db.execute(select(model.created_at).where(owner == user_id, model.created_at >= since))
    created = [ts for ts in result.scalars().all() if ts is not None]

    count = func.count(model.id)
    result = await db.execute(
        select(model.source, count)
        .where(owner == user_id, model.created_at >= since)
        .group_by(model.source)
        .order_by(count.desc(), model.source)
        .limit(TOP_SOURCES)
    )
    top_sources = [{"source": source, "trips": int(n)} for source, n in result.all()]

    earnings = []
    if role == AnalyticsRole.PILOT:
        result = await db.execute(
            select(Booking.updated_at, Booking.fare).where(
                Booking.pilot_id == user_id,
                Booking.status == TripStatus.FINISHED.value,
                Booking.updated_at >= since,
            )
        )
        earnings = bucket_earnings(list(result.all()), calendar, offset)

    result = await db.execute(
        select(Rating.score, func.count(Rating.id))
        .where(Rating.rated_user_id == user_id, Rating.created_at >= since)
        .group_by(Rating.score)
    )
    distribution = rating_distribution(list(result.all()))
    average, total_ratings = summarize_ratings(distribution)

    daily = bucket_daily(created, calendar, offset)
    analytics = UserAnalytics(
        user_id=user_id,
        role=role,
        days=days,
        daily_trips=daily,
        daily_earnings=earnings,
        rating_distribution=distribution,
        top_sources=top_sources,
        time_of_day=bucket_time_of_day(created, offset),
        total_trips=sum(d["trips"] for d in daily),
        total_earnings=sum((e["earnings"] for e in earnings), Decimal("0.00")),
        average_rating=average,
        total_ratings=total_ratings,
    )
    logger.info(
        "Analytics for %s=%s over %d days: %d trips, %d ratings",
        role.value, user_id, days, analytics.total_trips, total_ratings,
    )
    return analytics
