"""
Rating aggregator.

A rating consumes one TripEvent. In a single transaction it
  1. inserts the Rating (carrying the event id),
  2. folds the score into the rated user's UserAggregate,
  3. marks the event processed with the rating id.

UserAggregate is versioned, so two concurrent folds for the same user cannot
both commit: the loser gets StaleDataError (or IntegrityError if both tried to
create the aggregate) and the whole transaction is retried. Replaying an
already processed event returns the stored rating untouched.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from pilotbuddy.config import get_settings
from pilotbuddy.models.rating import Rating
from pilotbuddy.models.trip_event import TripEvent
from pilotbuddy.models.user_aggregate import UserAggregate
from pilotbuddy.services.errors import NotFound, TransactionConflict, ValidationError
from pilotbuddy.services.state_machine import Participant

logger = logging.getLogger(__name__)
settings = get_settings()

MIN_SCORE, MAX_SCORE = 1, 5
RETRY_BACKOFF_SECONDS = 0.05


def validate_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError(f"Rating must be a whole number from {MIN_SCORE} to {MAX_SCORE}")
    return score


def fold_rating(average, count: int, score: int) -> tuple[Decimal, int]:
    """Running average rounded to one decimal."""
    new_count = count + 1
    total = Decimal(str(average)) * count + score
    new_average = (total / new_count).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return new_average, new_count


async def load_pending_event(db: AsyncSession, trip_id: str, rater_id: str) -> TripEvent | None:
    result = await db.execute(
        select(TripEvent)
        .where(TripEvent.trip_id == trip_id, TripEvent.rater_id == rater_id)
        .order_by(TripEvent.processed, TripEvent.created_at)
        .limit(1)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def load_aggregate(db: AsyncSession, user_id: str) -> UserAggregate | None:
    return await db.get(UserAggregate, user_id, populate_existing=True)


async def _apply_rating(
    db: AsyncSession,
    trip_id: str,
    rater: Participant,
    score: int,
    comment: str | None,
) -> tuple[Rating, bool]:
    event = await load_pending_event(db, trip_id, rater.id)
    if event is None:
        raise NotFound("Nothing to rate for this trip")

    if event.processed:
        existing = await db.get(Rating, event.rating_id)
        return existing, False

    now = datetime.now(timezone.utc)
    rating = Rating(
        id=str(uuid.uuid4()),
        trip_id=trip_id,
        event_id=event.id,
        rater_id=rater.id,
        rater_name=rater.name or event.rater_name,
        rated_user_id=event.rated_user_id,
        score=score,
        comment=(comment or "").strip() or None,
        trigger=event.type,
    )
    db.add(rating)

    aggregate = await load_aggregate(db, event.rated_user_id)
    if aggregate is None:
        aggregate = UserAggregate(user_id=event.rated_user_id, total_ratings=0, average_rating=Decimal("0.0"))
        db.add(aggregate)
    aggregate.average_rating, aggregate.total_ratings = fold_rating(
        aggregate.average_rating or 0, aggregate.total_ratings or 0, score
    )
    aggregate.last_rated_at = now

    event.processed = True
    event.processed_at = now
    event.rating_id = rating.id

    await db.flush()
    return rating, True


async def submit_rating(
    db: AsyncSession,
    trip_id: str,
    rater: Participant,
    score: int,
    comment: str | None = None,
    max_retries: int | None = None,
) -> tuple[Rating, bool]:
    """
    Returns (rating, created). created is False when the rater's event was
    already consumed and the stored rating is returned instead.
    """
    validate_score(score)
    attempts = max_retries or settings.rating_max_retries

    for attempt in range(1, attempts + 1):
        try:
            rating, created = await _apply_rating(db, trip_id, rater, score, comment)
            await db.commit()
        except (StaleDataError, IntegrityError) as exc:
            await db.rollback()
            if attempt == attempts:
                logger.error("Rating for trip=%s by %s lost %d races: %s", trip_id, rater.id, attempt, exc)
                raise TransactionConflict("Rating could not be saved, please try again") from exc
            logger.warning("Rating conflict for trip=%s (attempt %d), retrying", trip_id, attempt)
            await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
            continue

        if created:
            await db.refresh(rating)
            logger.info("Rating %s: %s rated %s with %d", rating.id, rater.id, rating.rated_user_id, score)
        return rating, created


async def get_user_aggregate(db: AsyncSession, user_id: str) -> UserAggregate:
    aggregate = await db.get(UserAggregate, user_id)
    if aggregate is None:
        # Unrated users read as zeros.
        return UserAggregate(user_id=user_id, total_ratings=0, average_rating=Decimal("0.0"))
    return aggregate
