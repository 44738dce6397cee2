"""
Finished-trip retention: a pilot keeps only their most recent finished trips
(by scheduled start time). Applied whenever that history is read.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pilotbuddy.config import get_settings
from pilotbuddy.models.trip import Trip
from pilotbuddy.services.state_machine import TripStatus

logger = logging.getLogger(__name__)
settings = get_settings()


def split_retained(trips: list[Trip], keep: int) -> tuple[list[Trip], list[Trip]]:
    """Returns (kept, expired); kept is newest first."""
    ordered = sorted(trips, key=lambda t: t.start_time, reverse=True)
    return ordered[:keep], ordered[keep:]


async def list_finished_trips(db: AsyncSession, pilot_id: str, keep: int | None = None) -> list[Trip]:
    keep = settings.finished_trips_retained if keep is None else keep
    result = await db.execute(
        select(Trip).where(Trip.pilot_id == pilot_id, Trip.status == TripStatus.FINISHED.value)
    )
    kept, expired = split_retained(list(result.scalars().all()), keep)

    if expired:
        await db.execute(delete(Trip).where(Trip.id.in_([t.id for t in expired])))
        await db.commit()
        logger.info("Pruned %d finished trips for pilot=%s", len(expired), pilot_id)
    return kept
