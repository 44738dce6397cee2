import json

import redis.asyncio as aioredis
from pilotbuddy.config import get_settings

settings = get_settings()

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=100,
        )
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ---------------------------------------------------------------------------
# Trip event feed
# ---------------------------------------------------------------------------

def trip_events_key(trip_id: str) -> str:
    return f"trip:{trip_id}:events"


async def append_trip_event(redis: aioredis.Redis, trip_id: str, kind: str, payload: dict) -> str:
    """
    Append a lifecycle fact to the trip's stream and fan it out on the pub/sub
    channel of the same name. Returns the stream entry id.
    """
    key = trip_events_key(trip_id)
    body = json.dumps(payload, default=str)
    entry_id = await redis.xadd(
        key,
        {"kind": kind, "payload": body},
        maxlen=settings.trip_event_stream_maxlen,
        approximate=True,
    )
    await redis.publish(key, json.dumps({"id": entry_id, "kind": kind, "payload": payload}, default=str))
    return entry_id


async def read_trip_events(
    redis: aioredis.Redis,
    trip_id: str,
    after: str | None = None,
    count: int = 50,
) -> list[dict]:
    """Entries strictly after `after` (a stream id), oldest first."""
    low = f"({after}" if after else "-"
    entries = await redis.xrange(trip_events_key(trip_id), min=low, max="+", count=count)
    return [
        {"id": entry_id, "kind": fields["kind"], "payload": json.loads(fields["payload"])}
        for entry_id, fields in entries
    ]
