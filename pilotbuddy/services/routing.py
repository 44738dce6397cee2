"""
Routing / geocoding adapter.

  route()           -> OSRM /route (GeoJSON overview polyline + first leg steps)
  geocode()         -> Nominatim /search
  reverse_geocode() -> Nominatim /reverse

Transport failures are retried with exponential backoff and then surfaced as
RoutingUnavailable. Callers degrade to exact-match search instead of failing.
"""
import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from pilotbuddy.config import get_settings
from pilotbuddy.services.errors import RoutingUnavailable
from pilotbuddy.services.geo import LatLng

logger = logging.getLogger(__name__)
settings = get_settings()

# Raised when a response body does not have the expected shape
MALFORMED = (KeyError, IndexError, TypeError, ValueError, AttributeError)


@dataclass
class RouteResult:
    leg_distance_m: float
    leg_duration_text: str
    polyline: list[LatLng]
    steps: list[dict] = field(default_factory=list)

    @property
    def start(self) -> LatLng:
        return self.polyline[0]

    @property
    def end(self) -> LatLng:
        return self.polyline[-1]


def format_duration(seconds: float) -> str:
    minutes = int(round(seconds / 60))
    if minutes < 60:
        return f"{minutes} mins"
    hours, minutes = divmod(minutes, 60)
    return f"{hours} hr {minutes} mins" if minutes else f"{hours} hr"


class RoutingClient:
    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self._http = httpx.AsyncClient(
            timeout=settings.routing_timeout_seconds,
            headers={"User-Agent": settings.nominatim_user_agent},
            transport=transport,
        )
        self.max_retries = max_retries or settings.routing_max_retries
        self.backoff_seconds = (
            settings.routing_backoff_seconds if backoff_seconds is None else backoff_seconds
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_json(self, url: str, params: dict):
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = await self._http.get(url, params=params)
                resp.raise_for_status()
                return resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                if attempt == self.max_retries:
                    logger.error("Routing call %s failed after %d attempts: %s", url, attempt, exc)
                    raise RoutingUnavailable("Routing service unavailable") from exc
                await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))

    async def route(self, origin: LatLng, destination: LatLng) -> RouteResult:
        coords = f"{origin[1]},{origin[0]};{destination[1]},{destination[0]}"
        url = f"{settings.osrm_base_url}/route/v1/{settings.osrm_profile}/{coords}"
        data = await self._get_json(
            url, {"overview": "full", "geometries": "geojson", "steps": "true"}
        )
        try:
            return self._parse_route(data)
        except MALFORMED as exc:
            logger.error("Malformed OSRM response for %s: %r", coords, exc)
            raise RoutingUnavailable("Malformed route response") from exc

    @staticmethod
    def _parse_route(data: dict) -> RouteResult:
        if data.get("code") != "Ok" or not data.get("routes"):
            raise RoutingUnavailable(f"No route: {data.get('message', data.get('code'))}")

        route = data["routes"][0]
        leg = route["legs"][0]
        polyline = [(float(lat), float(lng)) for lng, lat in route["geometry"]["coordinates"]]
        if len(polyline) < 2:
            raise RoutingUnavailable("Route has no polyline")

        steps = [
            {
                "instruction": " ".join(
                    p for p in (s["maneuver"].get("type"), s["maneuver"].get("modifier"), s.get("name")) if p
                ),
                "distance_m": s.get("distance", 0.0),
                "duration_s": s.get("duration", 0.0),
            }
            for s in leg.get("steps", [])
        ]
        return RouteResult(
            leg_distance_m=float(leg["distance"]),
            leg_duration_text=format_duration(leg["duration"]),
            polyline=polyline,
            steps=steps,
        )

    async def geocode(self, text: str) -> LatLng | None:
        results = await self._get_json(
            f"{settings.nominatim_base_url}/search",
            {"q": text, "format": "jsonv2", "limit": 1},
        )
        if not results:
            return None
        try:
            return float(results[0]["lat"]), float(results[0]["lon"])
        except MALFORMED as exc:
            raise RoutingUnavailable("Malformed geocoding response") from exc

    async def reverse_geocode(self, lat: float, lng: float) -> str | None:
        data = await self._get_json(
            f"{settings.nominatim_base_url}/reverse",
            {"lat": lat, "lon": lng, "format": "jsonv2"},
        )
        try:
            return data.get("display_name") or None
        except MALFORMED as exc:
            raise RoutingUnavailable("Malformed reverse geocoding response") from exc


_routing_client: RoutingClient | None = None


async def get_routing_client() -> RoutingClient:
    global _routing_client
    if _routing_client is None:
        _routing_client = RoutingClient()
    return _routing_client


async def close_routing_client() -> None:
    global _routing_client
    if _routing_client:
        await _routing_client.aclose()
        _routing_client = None
