"""Duration-habit timers: one running timer per user.

The single-timer rule is enforced by the registry's check-and-set ``claim``:
two concurrent starts can never both win, and the loser gets
ActiveTimerConflict instead of silently replacing the running timer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import structlog

from questline.exceptions import ActiveTimerConflict, InvalidInput, NoActiveTimer
from questline.progression.calendar import CalendarPolicy
from questline.progression.habits import Habit, HabitLog, HabitType

logger = structlog.get_logger()


@dataclass(frozen=True)
class ActiveTimer:
    user_id: str
    habit_id: str
    started_at: datetime


class TimerRegistry(Protocol):
    """Storage for the active-timer marker."""

    async def claim(self, timer: ActiveTimer) -> ActiveTimer | None:
        """Store ``timer`` unless the user already has one. Returns the holder on conflict, else None."""
        ...

    async def release(self, user_id: str, habit_id: str) -> ActiveTimer | None:
        """Remove the user's timer on ``habit_id``. Returns it, or None if there was none."""
        ...

    async def get(self, user_id: str) -> ActiveTimer | None: ...


class InMemoryTimerRegistry:
    """Process-local registry (single worker deployments and tests)."""

    def __init__(self) -> None:
        self._timers: dict[str, ActiveTimer] = {}

    async def claim(self, timer: ActiveTimer) -> ActiveTimer | None:
        holder = self._timers.get(timer.user_id)
        if holder is not None:
            return holder
        self._timers[timer.user_id] = timer
        return None

    async def release(self, user_id: str, habit_id: str) -> ActiveTimer | None:
        holder = self._timers.get(user_id)
        if holder is None or holder.habit_id != habit_id:
            return None
        return self._timers.pop(user_id)

    async def get(self, user_id: str) -> ActiveTimer | None:
        return self._timers.get(user_id)


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    """Whole seconds since ``started_at``; clock skew floors at 0."""
    return max(0, math.floor((now - started_at).total_seconds()))


class TimerSession:
    """Start/stop timers for duration habits."""

    def __init__(self, registry: TimerRegistry) -> None:
        self.registry = registry

    async def start(self, user_id: str, habit: Habit, now: datetime) -> ActiveTimer:
        _check_duration_habit(user_id, habit)
        if now.tzinfo is None:
            raise InvalidInput("Naive datetimes are not accepted", instant=now.isoformat())

        timer = ActiveTimer(user_id=user_id, habit_id=habit.id, started_at=now)
        holder = await self.registry.claim(timer)
        if holder is not None:
            logger.info("timer_conflict", user_id=user_id, habit_id=habit.id, active_habit_id=holder.habit_id)
            raise ActiveTimerConflict(user_id, holder.habit_id)

        logger.info("timer_started", user_id=user_id, habit_id=habit.id)
        return timer

    async def stop(self, user_id: str, habit: Habit, now: datetime, policy: CalendarPolicy) -> HabitLog:
        """Release the timer and turn the elapsed time into a log in the habit's unit.

        The log is dated on the local day the timer was started.
        """
        _check_duration_habit(user_id, habit)
        if now.tzinfo is None:
            raise InvalidInput("Naive datetimes are not accepted", instant=now.isoformat())
        timer = await self.registry.release(user_id, habit.id)
        if timer is None:
            raise NoActiveTimer(user_id, habit.id)

        seconds = elapsed_seconds(timer.started_at, now)
        value = seconds // habit.seconds_per_unit
        logger.info("timer_stopped", user_id=user_id, habit_id=habit.id, elapsed_seconds=seconds, value=value)
        return HabitLog(
            habit_id=habit.id,
            day=policy.local_day(timer.started_at),
            value=value,
            logged_at=now,
            timer_started_at=timer.started_at,
            timer_ended_at=now,
        )

    async def active(self, user_id: str) -> ActiveTimer | None:
        return await self.registry.get(user_id)


def _check_duration_habit(user_id: str, habit: Habit) -> None:
    if habit.type is not HabitType.DURATION:
        raise InvalidInput("Timers are only available for duration habits", habit_id=habit.id)
    if habit.user_id != user_id:
        raise InvalidInput("Habit belongs to another user", habit_id=habit.id)
