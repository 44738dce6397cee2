"""
Unit tests for the rating aggregator.
The session is mocked; event and aggregate lookups are patched per test.
"""
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.orm.exc import StaleDataError

from pilotbuddy.models.rating import Rating
from pilotbuddy.models.trip_event import TripEvent
from pilotbuddy.models.user_aggregate import UserAggregate
from pilotbuddy.services import ratings
from pilotbuddy.services.errors import NotFound, TransactionConflict, ValidationError
from pilotbuddy.services.ratings import fold_rating, submit_rating, validate_score
from pilotbuddy.services.state_machine import Participant

BUDDY = Participant(id="buddy-001", name="Asha")


def make_event(processed=False, rating_id=None) -> TripEvent:
    return TripEvent(
        id="event-001",
        trip_id="trip-001",
        type="trip_completed",
        rater_id=BUDDY.id,
        rater_name=BUDDY.name,
        rated_user_id="pilot-001",
        processed=processed,
        rating_id=rating_id,
    )


def make_db():
    db = MagicMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    return db


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(ratings, "RETRY_BACKOFF_SECONDS", 0)


def patch_lookups(monkeypatch, event_factory, aggregate_factory):
    async def fake_event(db, trip_id, rater_id):
        return event_factory()

    async def fake_aggregate(db, user_id):
        return aggregate_factory()

    monkeypatch.setattr(ratings, "load_pending_event", fake_event)
    monkeypatch.setattr(ratings, "load_aggregate", fake_aggregate)


class TestFoldRating:
    def test_first_rating(self):
        assert fold_rating(0, 0, 4) == (Decimal("4.0"), 1)

    def test_running_average(self):
        average, count = fold_rating(Decimal("4.0"), 1, 5)
        assert (average, count) == (Decimal("4.5"), 2)

    def test_rounded_to_one_decimal(self):
        average, count = fold_rating(Decimal("4.5"), 2, 5)
        assert (average, count) == (Decimal("4.7"), 3)

    def test_half_rounds_up(self):
        assert fold_rating(Decimal("4.0"), 3, 5)[0] == Decimal("4.3")
        assert fold_rating(Decimal("3.0"), 1, 2)[0] == Decimal("2.5")


class TestValidateScore:
    @pytest.mark.parametrize("score", [1, 3, 5])
    def test_accepts_whole_numbers_in_range(self, score):
        assert validate_score(score) == score

    @pytest.mark.parametrize("score", [0, 6, -1, 4.5, True, "5", None])
    def test_rejects_everything_else(self, score):
        with pytest.raises(ValidationError):
            validate_score(score)


@pytest.mark.asyncio
class TestSubmitRating:
    async def test_creates_rating_and_folds_aggregate(self, monkeypatch):
        event = make_event()
        aggregate = UserAggregate(user_id="pilot-001", total_ratings=1, average_rating=Decimal("4.0"))
        patch_lookups(monkeypatch, lambda: event, lambda: aggregate)
        db = make_db()

        rating, created = await submit_rating(db, "trip-001", BUDDY, 5, comment="  smooth ride ")

        assert created is True
        assert rating.score == 5
        assert rating.rated_user_id == "pilot-001"
        assert rating.event_id == "event-001"
        assert rating.comment == "smooth ride"
        assert (aggregate.average_rating, aggregate.total_ratings) == (Decimal("4.5"), 2)
        assert event.processed is True
        assert event.rating_id == rating.id
        db.commit.assert_awaited_once()
        db.refresh.assert_awaited_once_with(rating)

    async def test_first_rating_creates_aggregate(self, monkeypatch):
        patch_lookups(monkeypatch, make_event, lambda: None)
        db = make_db()

        await submit_rating(db, "trip-001", BUDDY, 3)

        added = [c.args[0] for c in db.add.call_args_list]
        aggregates = [a for a in added if isinstance(a, UserAggregate)]
        assert len(aggregates) == 1
        assert aggregates[0].user_id == "pilot-001"
        assert (aggregates[0].average_rating, aggregates[0].total_ratings) == (Decimal("3.0"), 1)
        assert any(isinstance(a, Rating) for a in added)

    async def test_replay_returns_stored_rating(self, monkeypatch):
        stored = Rating(id="rating-001", score=4, rated_user_id="pilot-001")
        patch_lookups(monkeypatch, lambda: make_event(processed=True, rating_id="rating-001"),
                      lambda: pytest.fail("aggregate must not be touched on replay"))
        db = make_db()
        db.get = AsyncMock(return_value=stored)

        rating, created = await submit_rating(db, "trip-001", BUDDY, 1)

        assert created is False
        assert rating is stored
        db.add.assert_not_called()
        db.refresh.assert_not_awaited()

    async def test_nothing_to_rate(self, monkeypatch):
        patch_lookups(monkeypatch, lambda: None, lambda: None)
        with pytest.raises(NotFound):
            await submit_rating(make_db(), "trip-001", BUDDY, 5)

    async def test_invalid_score_is_rejected_before_any_read(self, monkeypatch):
        patch_lookups(monkeypatch, lambda: pytest.fail("no read expected"), lambda: None)
        with pytest.raises(ValidationError):
            await submit_rating(make_db(), "trip-001", BUDDY, 6)

    async def test_stale_aggregate_is_retried(self, monkeypatch, no_backoff):
        patch_lookups(
            monkeypatch,
            make_event,
            lambda: UserAggregate(user_id="pilot-001", total_ratings=2, average_rating=Decimal("4.0")),
        )
        db = make_db()
        db.commit = AsyncMock(side_effect=[StaleDataError("version mismatch"), None])

        rating, created = await submit_rating(db, "trip-001", BUDDY, 5)

        assert created is True
        assert db.commit.await_count == 2
        db.rollback.assert_awaited_once()

    async def test_exhausted_retries_raise_conflict(self, monkeypatch, no_backoff):
        patch_lookups(monkeypatch, make_event, lambda: None)
        db = make_db()
        db.commit = AsyncMock(side_effect=StaleDataError("version mismatch"))

        with pytest.raises(TransactionConflict):
            await submit_rating(db, "trip-001", BUDDY, 5, max_retries=3)

        assert db.commit.await_count == 3
        assert db.rollback.await_count == 3


@pytest.mark.asyncio
class TestUserAggregate:
    async def test_unrated_user_reads_as_zero(self):
        db = make_db()
        db.get = AsyncMock(return_value=None)
        aggregate = await ratings.get_user_aggregate(db, "nobody")
        assert aggregate.total_ratings == 0
        assert aggregate.average_rating == Decimal("0.0")
