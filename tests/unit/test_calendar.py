"""Calendar policy tests: local days, rollover and period buckets."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from questline.exceptions import InvalidInput
from questline.progression.calendar import CalendarPolicy, ResetPeriod, UTC_POLICY


class TestLocalDay:
    def test_utc_midnight_boundary(self):
        assert UTC_POLICY.local_day(datetime(2026, 10, 14, 23, 59, 59, tzinfo=timezone.utc)) == date(2026, 10, 14)
        assert UTC_POLICY.local_day(datetime(2026, 10, 15, 0, 0, tzinfo=timezone.utc)) == date(2026, 10, 15)

    def test_converts_to_user_timezone(self):
        policy = CalendarPolicy.for_timezone("America/New_York")
        # 02:00 UTC is 22:00 the previous evening in New York (EDT).
        assert policy.local_day(datetime(2026, 10, 15, 2, 0, tzinfo=timezone.utc)) == date(2026, 10, 14)

    def test_rollover_hour_keeps_late_night_on_previous_day(self):
        policy = CalendarPolicy(tz=ZoneInfo("UTC"), day_rollover_hour=4)
        assert policy.local_day(datetime(2026, 10, 15, 2, 0, tzinfo=timezone.utc)) == date(2026, 10, 14)
        assert policy.local_day(datetime(2026, 10, 15, 4, 0, tzinfo=timezone.utc)) == date(2026, 10, 15)

    def test_naive_datetime_rejected(self):
        with pytest.raises(InvalidInput):
            UTC_POLICY.local_day(datetime(2026, 10, 15, 12, 0))


class TestBuckets:
    def test_bucket_formats(self):
        day = date(2026, 10, 17)  # Saturday
        assert UTC_POLICY.bucket(ResetPeriod.DAILY, day) == "D:2026-10-17"
        assert UTC_POLICY.bucket(ResetPeriod.WEEKLY, day) == "W:2026-10-12"
        assert UTC_POLICY.bucket(ResetPeriod.MONTHLY, day) == "M:2026-10"

    def test_sunday_week_start(self):
        policy = CalendarPolicy(tz=ZoneInfo("UTC"), week_start=6)
        assert policy.week_of(date(2026, 10, 17)) == date(2026, 10, 11)
        assert policy.week_of(date(2026, 10, 18)) == date(2026, 10, 18)

    def test_buckets_for_covers_every_period(self):
        assert set(UTC_POLICY.buckets_for(date(2026, 1, 1))) == set(ResetPeriod)


class TestPolicyValidation:
    def test_unknown_timezone(self):
        with pytest.raises(InvalidInput):
            CalendarPolicy.for_timezone("Mars/Olympus_Mons")

    @pytest.mark.parametrize("kwargs", [{"week_start": 7}, {"day_rollover_hour": 24}, {"week_start": -1}])
    def test_out_of_range(self, kwargs):
        with pytest.raises(InvalidInput):
            CalendarPolicy(tz=ZoneInfo("UTC"), **kwargs)
