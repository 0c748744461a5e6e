"""Habit model tests: validation, same-day reduction and qualification."""

from datetime import date, datetime, timezone

import pytest

from questline.exceptions import InvalidInput
from questline.progression.calendar import UTC_POLICY
from questline.progression.habits import (
    Habit,
    HabitFrequency,
    HabitLog,
    HabitType,
    is_due,
    qualifies,
    qualifying_days,
    reduce_day_values,
)

DAY = date(2026, 10, 14)


def _at(hour):
    return datetime(2026, 10, 14, hour, 0, tzinfo=timezone.utc)


class TestReduceDayValues:
    def test_quantity_logs_are_summed(self):
        habit = Habit(id="water", user_id="u1", type=HabitType.QUANTITY, target_value=8)
        logs = [HabitLog("water", DAY, 3), HabitLog("water", DAY, 4), HabitLog("water", DAY, 1)]
        assert reduce_day_values(habit, logs) == {DAY: 8}
        assert qualifying_days(habit, logs) == {DAY}

    def test_duration_logs_take_the_max(self):
        habit = Habit(id="read", user_id="u1", type=HabitType.DURATION, target_value=30)
        logs = [HabitLog("read", DAY, 20), HabitLog("read", DAY, 25)]
        assert reduce_day_values(habit, logs) == {DAY: 25}
        assert qualifying_days(habit, logs) == set()

    def test_boolean_latest_log_wins(self):
        habit = Habit(id="gym", user_id="u1")
        logs = [
            HabitLog("gym", DAY, 1, logged_at=_at(18)),
            HabitLog("gym", DAY, 0, logged_at=_at(9)),
        ]
        assert reduce_day_values(habit, logs) == {DAY: 1}

    def test_boolean_undo_later_in_day(self):
        habit = Habit(id="gym", user_id="u1")
        logs = [
            HabitLog("gym", DAY, 1, logged_at=_at(9)),
            HabitLog("gym", DAY, 0, logged_at=_at(18)),
        ]
        assert qualifying_days(habit, logs) == set()

    def test_other_habits_ignored(self):
        habit = Habit(id="gym", user_id="u1")
        assert reduce_day_values(habit, [HabitLog("other", DAY, 1)]) == {}


class TestQualifies:
    def test_below_target_does_not_qualify(self):
        habit = Habit(id="steps", user_id="u1", type=HabitType.QUANTITY, target_value=10_000)
        assert qualifies(habit, 9_999) is False
        assert qualifies(habit, 10_000) is True

    def test_missing_target_needs_one(self):
        habit = Habit(id="steps", user_id="u1", type=HabitType.QUANTITY)
        assert qualifies(habit, 0) is False
        assert qualifies(habit, 1) is True


class TestIsDue:
    def test_custom_days_use_monday_zero(self):
        habit = Habit(id="h", user_id="u1", frequency=HabitFrequency.CUSTOM, custom_days=frozenset({0, 2}))
        assert is_due(habit, date(2026, 10, 12), UTC_POLICY) is True  # Monday
        assert is_due(habit, date(2026, 10, 13), UTC_POLICY) is False
        assert is_due(habit, date(2026, 10, 14), UTC_POLICY) is True  # Wednesday

    def test_weekly_due_on_week_start(self):
        habit = Habit(id="h", user_id="u1", frequency=HabitFrequency.WEEKLY)
        assert is_due(habit, date(2026, 10, 12), UTC_POLICY) is True
        assert is_due(habit, date(2026, 10, 14), UTC_POLICY) is False


class TestValidation:
    def test_custom_without_days(self):
        with pytest.raises(InvalidInput):
            Habit(id="h", user_id="u1", frequency=HabitFrequency.CUSTOM)

    def test_custom_day_out_of_range(self):
        with pytest.raises(InvalidInput):
            Habit(id="h", user_id="u1", frequency=HabitFrequency.CUSTOM, custom_days=frozenset({7}))

    def test_non_positive_target(self):
        with pytest.raises(InvalidInput):
            Habit(id="h", user_id="u1", type=HabitType.QUANTITY, target_value=0)

    def test_unknown_duration_unit(self):
        with pytest.raises(InvalidInput):
            Habit(id="h", user_id="u1", type=HabitType.DURATION, unit="fortnights")

    def test_negative_log_value(self):
        with pytest.raises(InvalidInput):
            HabitLog("h", DAY, -1)
