"""
Trip lifecycle.

    available -> pending -> accepted -> started -> finished
    available | pending -> cancelled

Payment completion is a second way into `finished` (from accepted or started).
Statuses never move backwards; finished and cancelled are terminal.

The functions here mutate a Trip in memory only. Callers hold the row lock and
commit, so a rejected transition leaves nothing behind.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pilotbuddy.models.trip import Trip
from pilotbuddy.services.errors import ConcurrentAssignment, Forbidden, InvalidTransition, ValidationError


class TripStatus(str, Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    ACCEPTED = "accepted"
    STARTED = "started"
    FINISHED = "finished"
    CANCELLED = "cancelled"


S = TripStatus

# action -> (allowed source statuses, target status)
ACTIONS: dict[str, tuple[frozenset[str], str]] = {
    "book": (frozenset({S.AVAILABLE.value}), S.PENDING.value),
    "accept": (frozenset({S.PENDING.value}), S.ACCEPTED.value),
    "start": (frozenset({S.ACCEPTED.value}), S.STARTED.value),
    "finish": (frozenset({S.STARTED.value}), S.FINISHED.value),
    "complete_payment": (frozenset({S.ACCEPTED.value, S.STARTED.value}), S.FINISHED.value),
    "cancel": (frozenset({S.AVAILABLE.value, S.PENDING.value}), S.CANCELLED.value),
}

VALID_TRANSITIONS: dict[str, set[str]] = {s.value: set() for s in TripStatus}
for _sources, _target in ACTIONS.values():
    for _source in _sources:
        VALID_TRANSITIONS[_source].add(_target)

OCCUPIED = frozenset({S.PENDING.value, S.ACCEPTED.value, S.STARTED.value})


def is_valid_transition(current: str, next_state: str) -> bool:
    return next_state in VALID_TRANSITIONS.get(current, set())


@dataclass(frozen=True)
class Participant:
    """Identity plus the contact snapshot copied onto trips and bookings."""

    id: str
    name: str = ""
    email: str = ""
    phone: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply(trip: Trip, action: str) -> None:
    sources, target = ACTIONS[action]
    if trip.status not in sources:
        raise InvalidTransition(trip.id, trip.status, action)
    trip.status = target


def _require_pilot(trip: Trip, actor_id: str) -> None:
    if trip.pilot_id != actor_id:
        raise Forbidden("Only the trip's pilot can do that")


def buddy_of(trip: Trip) -> Participant | None:
    if not trip.buddy_id:
        return None
    return Participant(
        id=trip.buddy_id,
        name=trip.buddy_name or "",
        email=trip.buddy_email or "",
        phone=trip.buddy_phone or "",
    )


def pilot_of(trip: Trip) -> Participant:
    return Participant(id=trip.pilot_id, name=trip.pilot_name, email=trip.pilot_email, phone=trip.pilot_phone)


def _clear_buddy(trip: Trip) -> Participant | None:
    buddy = buddy_of(trip)
    trip.buddy_id = None
    trip.buddy_name = None
    trip.buddy_email = None
    trip.buddy_phone = None
    return buddy


def book(trip: Trip, buddy: Participant, pickup_point: dict | None = None, adjusted_fare=None) -> None:
    """available -> pending. A trip already holding a buddy rejects the late writer."""
    if trip.pilot_id == buddy.id:
        raise ValidationError("You cannot book your own trip")
    if trip.status in OCCUPIED:
        raise ConcurrentAssignment("This trip was just booked by another buddy")
    _apply(trip, "book")
    trip.buddy_id = buddy.id
    trip.buddy_name = buddy.name
    trip.buddy_email = buddy.email
    trip.buddy_phone = buddy.phone
    trip.buddy_pickup = pickup_point
    trip.adjusted_fare = adjusted_fare


def accept(trip: Trip, pilot_id: str) -> None:
    _require_pilot(trip, pilot_id)
    _apply(trip, "accept")


def start(trip: Trip, pilot_id: str) -> None:
    _require_pilot(trip, pilot_id)
    _apply(trip, "start")
    trip.started_at = _now()


def finish(trip: Trip, pilot_id: str) -> Participant | None:
    """started -> finished. Returns the buddy whose contact fields were cleared."""
    _require_pilot(trip, pilot_id)
    _apply(trip, "finish")
    trip.finished_at = _now()
    return _clear_buddy(trip)


def complete_payment(trip: Trip) -> Participant | None:
    """
    Mark payment completed. On an accepted/started trip this also finishes it
    and returns the cleared buddy; on a finished trip it only sets the flag.
    """
    if trip.status == S.FINISHED.value:
        trip.payment_status = "completed"
        return None
    _apply(trip, "complete_payment")
    trip.payment_status = "completed"
    trip.finished_at = _now()
    return _clear_buddy(trip)


def initiate_payment(trip: Trip, pilot_id: str) -> None:
    _require_pilot(trip, pilot_id)
    if trip.status not in (S.ACCEPTED.value, S.STARTED.value, S.FINISHED.value):
        raise InvalidTransition(trip.id, trip.status, "initiate payment for")
    trip.payment_initiated = True


def cancel(trip: Trip, pilot_id: str) -> Participant | None:
    _require_pilot(trip, pilot_id)
    _apply(trip, "cancel")
    return _clear_buddy(trip)
