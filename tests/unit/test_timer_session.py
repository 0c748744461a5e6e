"""Timer tests: single active timer per user, elapsed time and unit conversion."""

from datetime import date, datetime, timedelta, timezone

import pytest

from questline.exceptions import ActiveTimerConflict, InvalidInput, NoActiveTimer
from questline.progression.calendar import CalendarPolicy, UTC_POLICY
from questline.progression.habits import Habit, HabitType
from questline.progression.timer_session import InMemoryTimerRegistry, TimerSession, elapsed_seconds

START = datetime(2026, 10, 14, 23, 30, tzinfo=timezone.utc)


def _duration(habit_id="read", unit=None):
    return Habit(id=habit_id, user_id="u1", type=HabitType.DURATION, target_value=30, unit=unit)


@pytest.fixture
def timers():
    return TimerSession(InMemoryTimerRegistry())


class TestElapsed:
    def test_floors_partial_seconds(self):
        assert elapsed_seconds(START, START + timedelta(seconds=59, milliseconds=999)) == 59

    def test_clock_skew_clamped(self):
        assert elapsed_seconds(START, START - timedelta(seconds=5)) == 0


class TestStart:
    @pytest.mark.asyncio
    async def test_second_timer_conflicts(self, timers):
        first = await timers.start("u1", _duration("read"), START)
        with pytest.raises(ActiveTimerConflict) as exc_info:
            await timers.start("u1", _duration("run"), START + timedelta(minutes=1))
        assert exc_info.value.active_habit_id == "read"
        assert await timers.active("u1") == first
        assert exc_info.value.to_dict()["reason"] == "active_timer_conflict"

    @pytest.mark.asyncio
    async def test_restarting_same_habit_conflicts(self, timers):
        await timers.start("u1", _duration(), START)
        with pytest.raises(ActiveTimerConflict):
            await timers.start("u1", _duration(), START + timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_other_users_are_independent(self, timers):
        await timers.start("u1", _duration(), START)
        other = Habit(id="read2", user_id="u2", type=HabitType.DURATION)
        await timers.start("u2", other, START)

    @pytest.mark.asyncio
    async def test_non_duration_habit_rejected(self, timers):
        with pytest.raises(InvalidInput):
            await timers.start("u1", Habit(id="gym", user_id="u1"), START)

    @pytest.mark.asyncio
    async def test_naive_start_rejected(self, timers):
        with pytest.raises(InvalidInput):
            await timers.start("u1", _duration(), datetime(2026, 10, 14, 12, 0))

    @pytest.mark.asyncio
    async def test_naive_stop_rejected_and_timer_kept(self, timers):
        await timers.start("u1", _duration(), START)
        with pytest.raises(InvalidInput):
            await timers.stop("u1", _duration(), datetime(2026, 10, 14, 13, 0), UTC_POLICY)
        active = await timers.active("u1")
        assert active is not None
        assert active.started_at == START


class TestStop:
    @pytest.mark.asyncio
    async def test_minutes_default_and_floor(self, timers):
        await timers.start("u1", _duration(), START)
        log = await timers.stop("u1", _duration(), START + timedelta(minutes=45, seconds=59), UTC_POLICY)
        assert log.value == 45
        assert log.timer_started_at == START
        assert await timers.active("u1") is None

    @pytest.mark.asyncio
    async def test_hours_unit(self, timers):
        habit = _duration(unit="hours")
        await timers.start("u1", habit, START)
        log = await timers.stop("u1", habit, START + timedelta(hours=2, minutes=59), UTC_POLICY)
        assert log.value == 2

    @pytest.mark.asyncio
    async def test_log_dated_on_start_day(self, timers):
        await timers.start("u1", _duration(), START)
        log = await timers.stop("u1", _duration(), START + timedelta(hours=1), UTC_POLICY)
        assert log.day == date(2026, 10, 14)

    @pytest.mark.asyncio
    async def test_start_day_uses_user_timezone(self, timers):
        policy = CalendarPolicy.for_timezone("Asia/Tokyo")
        await timers.start("u1", _duration(), START)
        log = await timers.stop("u1", _duration(), START + timedelta(minutes=10), policy)
        assert log.day == date(2026, 10, 15)

    @pytest.mark.asyncio
    async def test_stop_without_timer(self, timers):
        with pytest.raises(NoActiveTimer):
            await timers.stop("u1", _duration(), START, UTC_POLICY)

    @pytest.mark.asyncio
    async def test_stop_other_habit_leaves_timer_running(self, timers):
        await timers.start("u1", _duration("read"), START)
        with pytest.raises(NoActiveTimer):
            await timers.stop("u1", _duration("run"), START, UTC_POLICY)
        assert (await timers.active("u1")).habit_id == "read"
