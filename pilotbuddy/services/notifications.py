"""
Lifecycle facts for the external chat / push component.

Publishing happens after the store commit and never fails the action that
produced it; delivery is somebody else's job.
"""
import logging

from redis.exceptions import RedisError

from pilotbuddy.redis_client import append_trip_event, get_redis

logger = logging.getLogger(__name__)

BOOKING_REQUESTED = "booking_requested"
BOOKING_ACCEPTED = "booking_accepted"
TRIP_STARTED = "trip_started"
TRIP_FINISHED = "trip_finished"
TRIP_CANCELLED = "trip_cancelled"
PAYMENT_INITIATED = "payment_initiated"
PAYMENT_COMPLETED = "payment_completed"


async def notify(trip_id: str, kind: str, **payload) -> str | None:
    try:
        redis = await get_redis()
        entry_id = await append_trip_event(redis, trip_id, kind, payload)
    except RedisError as exc:
        logger.error("Failed to publish %s for trip=%s: %s", kind, trip_id, exc)
        return None
    logger.info("Published %s for trip=%s", kind, trip_id)
    return entry_id
