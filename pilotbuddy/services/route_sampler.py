"""
Route sampler: turns a routed polyline into labelled pickup points.

Start (distance 0) and End (leg distance) are always present; one intermediate
point is placed at every full `step_m` of distance along the polyline.
"""
import logging
from typing import Awaitable, Callable

from pilotbuddy.services.errors import RoutingUnavailable
from pilotbuddy.services.geo import LatLng, haversine_m

logger = logging.getLogger(__name__)

LabelResolver = Callable[[float, float], Awaitable[str | None]]

START, INTERMEDIATE, END = "start", "intermediate", "end"


def _point(point_id: str, name: str, kind: str, lat: float, lng: float, distance_m: float) -> dict:
    return {
        "id": point_id,
        "name": name,
        "type": kind,
        "lat": lat,
        "lng": lng,
        "distance_m": round(distance_m, 1),
    }


def step_positions(polyline: list[LatLng], step_m: float) -> list[tuple[LatLng, float]]:
    """
    Walk the polyline and return (position, cumulative distance) at every
    multiple of `step_m`, interpolating inside the segment that crosses it.
    """
    if step_m <= 0:
        raise ValueError("step_m must be positive")

    positions: list[tuple[LatLng, float]] = []
    travelled = 0.0
    next_mark = step_m
    for (lat1, lng1), (lat2, lng2) in zip(polyline, polyline[1:]):
        seg = haversine_m((lat1, lng1), (lat2, lng2))
        while seg > 0 and travelled + seg >= next_mark:
            f = (next_mark - travelled) / seg
            positions.append(((lat1 + (lat2 - lat1) * f, lng1 + (lng2 - lng1) * f), next_mark))
            next_mark += step_m
        travelled += seg
    return positions


async def sample_pickup_points(
    polyline: list[LatLng],
    total_distance_m: float,
    step_m: float,
    resolve_label: LabelResolver | None = None,
    start_name: str = "Start Point",
    end_name: str = "End Point",
) -> list[dict]:
    if len(polyline) < 2:
        return []

    (start_lat, start_lng), (end_lat, end_lng) = polyline[0], polyline[-1]
    points = [_point(START, start_name, START, start_lat, start_lng, 0.0)]

    for index, ((lat, lng), distance_m) in enumerate(step_positions(polyline, step_m), start=1):
        label = None
        if resolve_label is not None:
            try:
                label = await resolve_label(lat, lng)
            except RoutingUnavailable:
                logger.warning("Reverse geocode failed at (%.5f, %.5f)", lat, lng)
        points.append(
            _point(f"point_{index}", label or f"Pickup Point {index}", INTERMEDIATE, lat, lng, distance_m)
        )

    last = points[-1]["distance_m"]
    points.append(_point(END, end_name, END, end_lat, end_lng, max(total_distance_m, last)))
    return points


async def build_pickup_points(
    routing,
    origin: LatLng,
    destination: LatLng,
    step_m: float,
    start_name: str = "Start Point",
    end_name: str = "End Point",
):
    """
    Route origin -> destination and sample it. Returns (RouteResult | None, points);
    an unavailable routing service yields (None, []).
    """
    try:
        result = await routing.route(origin, destination)
    except RoutingUnavailable as exc:
        logger.warning("No route for %s -> %s: %s", origin, destination, exc.detail)
        return None, []

    points = await sample_pickup_points(
        result.polyline,
        result.leg_distance_m,
        step_m,
        resolve_label=routing.reverse_geocode,
        start_name=start_name,
        end_name=end_name,
    )
    return result, points
