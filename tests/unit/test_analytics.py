"""
Unit tests for per-user analytics: day, time-of-day and rating bucketing.
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from pilotbuddy.services.analytics import (
    AnalyticsRole, bucket_daily, bucket_earnings, bucket_time_of_day, load_user_analytics,
    rating_distribution, summarize_ratings, time_slot, window_days,
)
from pilotbuddy.services.errors import ValidationError

UTC = timedelta(0)
IST = timedelta(hours=5, minutes=30)
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def at(day, hour, minute=0):
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


class TestTimeSlots:
    @pytest.mark.parametrize("hour,slot", [
        (0, "night"), (5, "night"), (6, "morning"), (11, "morning"),
        (12, "afternoon"), (17, "afternoon"), (18, "evening"), (23, "evening"),
    ])
    def test_boundaries(self, hour, slot):
        assert time_slot(hour) == slot

    def test_all_slots_present_in_order(self):
        buckets = bucket_time_of_day([at(19, 7), at(19, 8), at(19, 20)], UTC)
        assert buckets == [
            {"slot": "night", "trips": 0},
            {"slot": "morning", "trips": 2},
            {"slot": "afternoon", "trips": 0},
            {"slot": "evening", "trips": 1},
        ]

    def test_offset_moves_the_slot(self):
        # 02:00 UTC is 07:30 in India
        assert bucket_time_of_day([at(19, 2)], IST)[1] == {"slot": "morning", "trips": 1}


class TestDailyBuckets:
    def test_window_ends_today(self):
        days = window_days(date(2026, 10, 19), 3)
        assert days == [date(2026, 10, 17), date(2026, 10, 18), date(2026, 10, 19)]

    def test_zero_filled_and_ordered(self):
        days = window_days(date(2026, 10, 19), 3)
        buckets = bucket_daily([at(19, 9), at(17, 9), at(19, 10)], days, UTC)
        assert buckets == [
            {"day": date(2026, 10, 17), "trips": 1},
            {"day": date(2026, 10, 18), "trips": 0},
            {"day": date(2026, 10, 19), "trips": 2},
        ]

    def test_offset_can_cross_midnight(self):
        days = window_days(date(2026, 10, 19), 2)
        # 20:00 UTC on the 18th is already the 19th in India
        buckets = bucket_daily([at(18, 20)], days, IST)
        assert buckets[-1] == {"day": date(2026, 10, 19), "trips": 1}

    def test_naive_timestamps_are_utc(self):
        days = window_days(date(2026, 10, 19), 1)
        assert bucket_daily([datetime(2026, 10, 19, 8, 0)], days, UTC)[0]["trips"] == 1

    def test_outside_window_is_ignored(self):
        days = window_days(date(2026, 10, 19), 1)
        assert bucket_daily([at(10, 9)], days, UTC)[0]["trips"] == 0

    def test_earnings_summed_per_day(self):
        days = window_days(date(2026, 10, 19), 2)
        rows = [(at(18, 9), Decimal("47.20")), (at(19, 9), Decimal("88.00")), (at(19, 18), Decimal("26.40"))]
        assert bucket_earnings(rows, days, UTC) == [
            {"day": date(2026, 10, 18), "earnings": Decimal("47.20")},
            {"day": date(2026, 10, 19), "earnings": Decimal("114.40")},
        ]


class TestRatingDistribution:
    def test_zero_filled(self):
        assert rating_distribution([(5, 3), (4, 1)]) == [
            {"stars": 1, "count": 0},
            {"stars": 2, "count": 0},
            {"stars": 3, "count": 0},
            {"stars": 4, "count": 1},
            {"stars": 5, "count": 3},
        ]

    def test_summary(self):
        assert summarize_ratings(rating_distribution([(5, 3), (4, 1)])) == (4.8, 4)

    def test_summary_without_ratings(self):
        assert summarize_ratings(rating_distribution([])) == (0.0, 0)


def scalars(values):
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


def rows(values):
    result = MagicMock()
    result.all.return_value = values
    return result


@pytest.mark.asyncio
class TestLoadUserAnalytics:
    async def test_pilot_side(self):
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=[
            scalars([at(19, 8), at(18, 19)]),
            rows([("ukkadam", 2)]),
            rows([(at(19, 10), Decimal("88.00"))]),
            rows([(5, 1)]),
        ])

        analytics = await load_user_analytics(db, "pilot-001", AnalyticsRole.PILOT, days=7, now=NOW)

        assert len(analytics.daily_trips) == 7
        assert analytics.total_trips == 2
        assert analytics.total_earnings == Decimal("88.00")
        assert analytics.top_sources == [{"source": "ukkadam", "trips": 2}]
        assert (analytics.average_rating, analytics.total_ratings) == (5.0, 1)
        assert db.execute.await_count == 4

    async def test_buddy_side_has_no_earnings_query(self):
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=[scalars([at(19, 8)]), rows([]), rows([])])

        analytics = await load_user_analytics(db, "buddy-001", AnalyticsRole.BUDDY, days=1, now=NOW)

        assert analytics.daily_trips == [{"day": date(2026, 10, 19), "trips": 1}]
        assert analytics.daily_earnings == []
        assert analytics.total_earnings == Decimal("0.00")
        assert db.execute.await_count == 3

    async def test_days_bounds(self):
        with pytest.raises(ValidationError):
            await load_user_analytics(AsyncMock(), "u", AnalyticsRole.PILOT, days=0)
