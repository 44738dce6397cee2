"""
Fare model.

  base_fare     = distance_km * rate_per_km + fixed_surcharge
  adjusted_fare = max(base_fare - pickup_offset_km * rate_per_km, floor_ratio * base_fare)
  savings       = base_fare - adjusted_fare
"""
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP

from pilotbuddy.config import get_settings
from pilotbuddy.services.geo import LatLng, haversine_km

settings = get_settings()

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_base_fare(
    distance_km: float,
    rate_per_km: float | None = None,
    fixed_surcharge: float | None = None,
) -> Decimal:
    rate = settings.rate_per_km if rate_per_km is None else rate_per_km
    surcharge = settings.fixed_surcharge if fixed_surcharge is None else fixed_surcharge
    return to_money(Decimal(str(distance_km)) * Decimal(str(rate)) + Decimal(str(surcharge)))


def calculate_adjusted_fare(
    base_fare: Decimal,
    rate_per_km: Decimal,
    pickup: LatLng,
    trip_source: LatLng,
) -> tuple[Decimal, Decimal, float]:
    """
    Returns (adjusted_fare, savings, pickup_distance_km) for a buddy boarding at
    `pickup` instead of the trip's source. The pilot always keeps at least
    `fare_floor_ratio` of the base fare.
    """
    base = Decimal(str(base_fare))
    offset_km = haversine_km(pickup, trip_source)
    reduced = base - Decimal(str(offset_km)) * Decimal(str(rate_per_km))
    # Floor rounds up so the pilot never gets less than the ratio.
    floor = (base * Decimal(str(settings.fare_floor_ratio))).quantize(CENTS, rounding=ROUND_CEILING)
    adjusted = max(to_money(reduced), floor)
    return adjusted, to_money(base) - adjusted, offset_km
