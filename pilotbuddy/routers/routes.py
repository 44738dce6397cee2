"""
Routes router: POST /v1/routes/pickup-points

Samples pickup points along a route without creating anything. Pilots use it
to choose which points to expose; buddies use it to pick a point on their own
route for flexible search.
"""
from fastapi import APIRouter, Depends

from pilotbuddy.config import get_settings
from pilotbuddy.middleware.auth import get_current_participant
from pilotbuddy.schemas.schemas import PickupPreviewRequest, PickupPreviewResponse
from pilotbuddy.services.route_sampler import build_pickup_points
from pilotbuddy.services.routing import RoutingClient, get_routing_client
from pilotbuddy.services.state_machine import Participant
from pilotbuddy.services.trips import resolve_place

settings = get_settings()
router = APIRouter(prefix="/v1/routes", tags=["Routes"])


@router.post("/pickup-points", response_model=PickupPreviewResponse)
async def preview_pickup_points(
    payload: PickupPreviewRequest,
    routing: RoutingClient = Depends(get_routing_client),
    user: Participant = Depends(get_current_participant),
):
    origin = await resolve_place(routing, payload.source, payload.source_lat, payload.source_lng)
    target = await resolve_place(routing, payload.destination, payload.dest_lat, payload.dest_lng)
    if not origin or not target:
        return PickupPreviewResponse(route_available=False)

    result, points = await build_pickup_points(
        routing, origin, target, settings.buddy_pickup_step_m,
        start_name=payload.source.strip(), end_name=payload.destination.strip(),
    )
    if result is None:
        return PickupPreviewResponse(route_available=False)
    return PickupPreviewResponse(
        route_available=True,
        distance_km=round(result.leg_distance_m / 1000, 2),
        duration_text=result.leg_duration_text,
        points=points,
        steps=result.steps,
    )
