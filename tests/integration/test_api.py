"""
Integration tests for the HTTP surface.
Uses pytest-asyncio + HTTPX ASGITransport; the database session, routing
client and notification publisher are replaced with in-memory fakes.
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient, ASGITransport

from pilotbuddy.database import get_db
from pilotbuddy.main import app
from pilotbuddy.middleware.auth import create_access_token
from pilotbuddy.models.trip import Trip
from pilotbuddy.routers import trips as trips_router
from pilotbuddy.services import notifications
from pilotbuddy.services.errors import RoutingUnavailable
from pilotbuddy.services.routing import get_routing_client

PILOT_TOKEN = create_access_token({"sub": "pilot-test-001", "name": "Karthik", "phone": "+919800000000"})
BUDDY_TOKEN = create_access_token({"sub": "buddy-test-001", "name": "Asha", "phone": "+919800000001"})
START_TIME = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def pilot_headers():
    return {"Authorization": f"Bearer {PILOT_TOKEN}", "Content-Type": "application/json"}


@pytest.fixture
def buddy_headers():
    return {"Authorization": f"Bearer {BUDDY_TOKEN}", "Content-Type": "application/json"}


def make_trip(status="available", **kw) -> Trip:
    defaults = dict(
        id="trip-test-001",
        pilot_id="pilot-test-001",
        pilot_name="Karthik",
        pilot_email="",
        pilot_phone="+919800000000",
        source="ukkadam",
        destination="gandhipuram",
        source_lat=11.0,
        source_lng=76.96,
        start_time=START_TIME,
        route=[],
        pickup_candidates=[],
        distance_km=Decimal("10.000"),
        base_fare=Decimal("88.00"),
        rate_per_km=Decimal("6.80"),
        fixed_surcharge=Decimal("20.00"),
        status=status,
        payment_initiated=False,
        payment_status="pending",
    )
    defaults.update(kw)
    return Trip(**defaults)


def locked(trip):
    result = MagicMock()
    result.scalar_one_or_none.return_value = trip
    return result


def fake_refresh(obj):
    # stands in for server defaults populated on flush
    if getattr(obj, "id", None) is None:
        obj.id = "generated-001"
    obj.created_at = START_TIME


@pytest.fixture
def db():
    session = MagicMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    session.get = AsyncMock(return_value=None)
    session.execute = AsyncMock(return_value=locked(None))
    session.commit = AsyncMock()
    session.refresh = AsyncMock(side_effect=fake_refresh)
    return session


@pytest.fixture
def routing():
    client = MagicMock()
    client.route = AsyncMock(side_effect=RoutingUnavailable("Routing service unavailable"))
    client.geocode = AsyncMock(side_effect=RoutingUnavailable("Routing service unavailable"))
    client.reverse_geocode = AsyncMock(return_value=None)
    return client


@pytest.fixture(autouse=True)
def overrides(db, routing, monkeypatch):
    async def _get_db():
        yield db

    async def _get_routing():
        return routing

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_routing_client] = _get_routing
    monkeypatch.setattr(notifications, "notify", AsyncMock(return_value="1-0"))
    yield
    app.dependency_overrides.clear()


def client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
class TestTripAPI:
    async def test_health_check(self):
        async with client() as c:
            resp = await c.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_create_trip_missing_auth(self):
        async with client() as c:
            resp = await c.post("/v1/trips", json={
                "source": "Ukkadam", "destination": "Gandhipuram",
                "start_time": START_TIME.isoformat(),
            })
        assert resp.status_code == 401

    async def test_create_trip_without_route_needs_distance(self, pilot_headers):
        async with client() as c:
            resp = await c.post("/v1/trips", headers=pilot_headers, json={
                "source": "Ukkadam", "destination": "Gandhipuram",
                "start_time": START_TIME.isoformat(),
            })
        assert resp.status_code == 400
        assert resp.json()["error"] == "ValidationError"

    async def test_create_trip_falls_back_to_given_distance(self, pilot_headers, db):
        async with client() as c:
            resp = await c.post("/v1/trips", headers=pilot_headers, json={
                "source": "Ukkadam", "destination": "Gandhipuram",
                "start_time": START_TIME.isoformat(), "distance_km": 10,
            })
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "available"
        assert body["source"] == "ukkadam"
        assert Decimal(body["base_fare"]) == Decimal("88.00")
        assert body["route"] == []
        db.commit.assert_awaited_once()

    async def test_get_nonexistent_trip(self, pilot_headers):
        async with client() as c:
            resp = await c.get("/v1/trips/nonexistent-uuid", headers=pilot_headers)
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Trip not found", "error": "NotFound"}

    async def test_finish_before_start_conflicts(self, pilot_headers, db):
        db.execute = AsyncMock(return_value=locked(make_trip("available")))
        async with client() as c:
            resp = await c.post("/v1/trips/trip-test-001/finish", headers=pilot_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidTransition"
        db.commit.assert_not_awaited()

    async def test_only_pilot_can_accept(self, buddy_headers, db):
        db.execute = AsyncMock(return_value=locked(make_trip("pending", buddy_id="buddy-test-001")))
        async with client() as c:
            resp = await c.post("/v1/trips/trip-test-001/accept", headers=buddy_headers)
        assert resp.status_code == 403

    async def test_accept_publishes_event(self, pilot_headers, db):
        db.execute = AsyncMock(return_value=locked(make_trip("pending", buddy_id="buddy-test-001")))
        async with client() as c:
            resp = await c.post("/v1/trips/trip-test-001/accept", headers=pilot_headers)
        assert resp.status_code == 200
        assert resp.json() == {"trip_id": "trip-test-001", "status": "accepted", "payment_status": "pending"}
        notifications.notify.assert_awaited_once()
        assert notifications.notify.call_args.args[1] == notifications.BOOKING_ACCEPTED


@pytest.mark.asyncio
class TestBookingAPI:
    async def test_search_radius_out_of_range(self, buddy_headers):
        async with client() as c:
            resp = await c.post("/v1/bookings/search", headers=buddy_headers, json={
                "mode": "flexible", "destination": "Gandhipuram",
                "desired_time": START_TIME.isoformat(),
                "pickup_lat": 11.0, "pickup_lng": 76.96, "radius_km": 6,
            })
        assert resp.status_code == 422

    async def test_search_without_matches(self, buddy_headers, db):
        empty = MagicMock()
        empty.scalars.return_value.all.return_value = []
        db.execute = AsyncMock(return_value=empty)
        async with client() as c:
            resp = await c.post("/v1/bookings/search", headers=buddy_headers, json={
                "mode": "exact", "source": "Ukkadam", "destination": "Gandhipuram",
                "desired_time": START_TIME.isoformat(),
            })
        assert resp.status_code == 200
        assert resp.json() == {"results": [], "message": "No pilots found for this route and time."}

    async def test_book_available_trip(self, buddy_headers, db):
        db.execute = AsyncMock(return_value=locked(make_trip("available")))
        async with client() as c:
            resp = await c.post("/v1/bookings", headers=buddy_headers, json={"trip_id": "trip-test-001"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["buddy_id"] == "buddy-test-001"
        assert Decimal(body["fare"]) == Decimal("88.00")

    async def test_book_taken_trip(self, buddy_headers, db):
        db.execute = AsyncMock(return_value=locked(make_trip("pending", buddy_id="buddy-test-999")))
        async with client() as c:
            resp = await c.post("/v1/bookings", headers=buddy_headers, json={"trip_id": "trip-test-001"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "ConcurrentAssignment"


@pytest.mark.asyncio
class TestRatingAPI:
    async def test_score_out_of_range(self, buddy_headers):
        async with client() as c:
            resp = await c.post("/v1/trips/trip-test-001/ratings", headers=buddy_headers, json={"score": 6})
        assert resp.status_code == 422

    async def test_nothing_to_rate(self, buddy_headers):
        async with client() as c:
            resp = await c.post("/v1/trips/trip-test-001/ratings", headers=buddy_headers, json={"score": 5})
        assert resp.status_code == 404

    async def test_unrated_user(self):
        async with client() as c:
            resp = await c.get("/v1/users/pilot-test-001/rating")
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == "pilot-test-001"
        assert body["total_ratings"] == 0
        assert body["average_rating"] == 0.0
        assert body["last_rated_at"] is None


@pytest.mark.asyncio
class TestTripEventsAPI:
    @pytest.fixture(autouse=True)
    def feed(self, monkeypatch):
        redis = MagicMock()
        redis.xrange = AsyncMock(return_value=[
            ("1-0", {"kind": "booking_accepted", "payload": '{"buddy_id": "buddy-test-001"}'}),
        ])
        monkeypatch.setattr(trips_router, "get_redis", AsyncMock(return_value=redis))
        return redis

    async def test_stranger_cannot_read_feed(self, db, feed):
        stranger = create_access_token({"sub": "stranger-001"})
        db.get = AsyncMock(return_value=make_trip("accepted", buddy_id="buddy-test-001"))
        async with client() as c:
            resp = await c.get("/v1/trips/trip-test-001/events",
                               headers={"Authorization": f"Bearer {stranger}"})
        assert resp.status_code == 403
        assert resp.json()["error"] == "Forbidden"
        feed.xrange.assert_not_awaited()

    async def test_buddy_reads_feed(self, buddy_headers, db):
        db.get = AsyncMock(return_value=make_trip("accepted", buddy_id="buddy-test-001"))
        async with client() as c:
            resp = await c.get("/v1/trips/trip-test-001/events", headers=buddy_headers)
        assert resp.status_code == 200
        assert resp.json() == [
            {"id": "1-0", "kind": "booking_accepted", "payload": {"buddy_id": "buddy-test-001"}},
        ]

    async def test_feed_of_missing_trip(self, pilot_headers):
        async with client() as c:
            resp = await c.get("/v1/trips/nonexistent-uuid/events", headers=pilot_headers)
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestAnalyticsAPI:
    async def test_requires_auth(self):
        async with client() as c:
            resp = await c.get("/v1/users/me/analytics")
        assert resp.status_code == 401

    async def test_days_out_of_range(self, pilot_headers):
        async with client() as c:
            resp = await c.get("/v1/users/me/analytics", params={"days": 0}, headers=pilot_headers)
        assert resp.status_code == 422

    async def test_buddy_analytics(self, buddy_headers, db):
        empty = MagicMock()
        empty.scalars.return_value.all.return_value = []
        empty.all.return_value = []
        db.execute = AsyncMock(return_value=empty)
        async with client() as c:
            resp = await c.get("/v1/users/me/analytics", params={"role": "buddy", "days": 7}, headers=buddy_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == "buddy-test-001"
        assert body["role"] == "buddy"
        assert len(body["daily_trips"]) == 7
        assert [b["stars"] for b in body["rating_distribution"]] == [1, 2, 3, 4, 5]
        assert body["total_trips"] == 0
