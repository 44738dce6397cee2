"""
Great-circle helpers. Coordinates are (lat, lng) pairs in degrees.
"""
from math import radians, sin, cos, sqrt, atan2
from typing import Iterable, Mapping

EARTH_RADIUS_M = 6_371_000

LatLng = tuple[float, float]


def haversine_m(a: LatLng, b: LatLng) -> float:
    lat1, lng1 = a
    lat2, lng2 = b
    phi1, phi2 = radians(lat1), radians(lat2)
    dphi = radians(lat2 - lat1)
    dlambda = radians(lng2 - lng1)
    h = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * atan2(sqrt(h), sqrt(1 - h))


def haversine_km(a: LatLng, b: LatLng) -> float:
    return haversine_m(a, b) / 1000


def as_latlng(point: Mapping) -> LatLng:
    return float(point["lat"]), float(point["lng"])


def nearest_distance_m(point: LatLng, waypoints: Iterable[Mapping]) -> float | None:
    """Distance from `point` to the closest waypoint, or None if there are none."""
    best = None
    for wp in waypoints:
        d = haversine_m(point, as_latlng(wp))
        if best is None or d < best:
            best = d
    return best


def is_near_polyline(point: LatLng, waypoints: Iterable[Mapping], radius_m: float) -> bool:
    """True if any waypoint lies within `radius_m` of `point` (boundary inclusive)."""
    return any(haversine_m(point, as_latlng(wp)) <= radius_m for wp in waypoints)
