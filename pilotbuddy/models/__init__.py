from pilotbuddy.models.trip import Trip
from pilotbuddy.models.booking import Booking
from pilotbuddy.models.trip_event import TripEvent
from pilotbuddy.models.rating import Rating
from pilotbuddy.models.user_aggregate import UserAggregate

__all__ = ["Trip", "Booking", "TripEvent", "Rating", "UserAggregate"]
