"""Habit definitions, log entries and per-day qualification."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from questline.exceptions import InvalidInput
from questline.progression.calendar import CalendarPolicy


class HabitType(str, Enum):
    BOOLEAN = "boolean"
    QUANTITY = "quantity"
    DURATION = "duration"


class HabitFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


DURATION_UNITS: dict[str, int] = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
}


@dataclass(frozen=True)
class Habit:
    """A habit as the engine sees it. Streak fields are never stored here."""

    id: str
    user_id: str
    type: HabitType = HabitType.BOOLEAN
    frequency: HabitFrequency = HabitFrequency.DAILY
    target_value: float | None = None
    unit: str | None = None
    custom_days: frozenset[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.target_value is not None and self.target_value <= 0:
            raise InvalidInput("Habit target must be positive", habit_id=self.id, target=self.target_value)
        if self.frequency is HabitFrequency.CUSTOM:
            if not self.custom_days:
                raise InvalidInput("Custom habits need at least one scheduled weekday", habit_id=self.id)
            if any(not 0 <= d <= 6 for d in self.custom_days):
                raise InvalidInput("Custom days must be weekday numbers 0-6", habit_id=self.id)
        if self.type is HabitType.DURATION and self.unit is not None and self.unit not in DURATION_UNITS:
            raise InvalidInput(f"Unsupported duration unit: {self.unit}", habit_id=self.id)

    @property
    def seconds_per_unit(self) -> int:
        """Duration habits default to minutes."""
        return DURATION_UNITS.get(self.unit or "minutes", 60)


@dataclass(frozen=True)
class HabitLog:
    """One log action. Several logs on the same day reduce to one day value."""

    habit_id: str
    day: date
    value: float = 1
    logged_at: datetime | None = None
    timer_started_at: datetime | None = None
    timer_ended_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.value < 0:
            raise InvalidInput("Log value cannot be negative", habit_id=self.habit_id, value=self.value)


def qualifies(habit: Habit, day_value: float) -> bool:
    """Whether a reduced day value counts as a completion."""
    if habit.type is HabitType.BOOLEAN:
        return day_value >= 1
    if habit.target_value:
        return day_value >= habit.target_value
    return day_value >= 1


def reduce_day_values(habit: Habit, logs: Iterable[HabitLog]) -> dict[date, float]:
    """Collapse logs to one value per day.

    quantity: summed. duration: max. boolean: the latest log wins.
    """
    values: dict[date, float] = {}
    latest: dict[date, tuple[datetime | None, int]] = {}

    for index, log in enumerate(logs):
        if log.habit_id != habit.id:
            continue
        day = log.day
        if habit.type is HabitType.QUANTITY:
            values[day] = values.get(day, 0) + log.value
        elif habit.type is HabitType.DURATION:
            values[day] = max(values.get(day, 0), log.value)
        else:
            # Ties on logged_at (or missing timestamps) fall back to input order.
            order = (log.logged_at, index)
            previous = latest.get(day)
            if previous is None or _later(order, previous):
                latest[day] = order
                values[day] = log.value
    return values


def qualifying_days(habit: Habit, logs: Iterable[HabitLog]) -> set[date]:
    return {day for day, value in reduce_day_values(habit, logs).items() if qualifies(habit, value)}


def is_due(habit: Habit, day: date, policy: CalendarPolicy) -> bool:
    """Whether the habit is scheduled on ``day`` (used for "today" lists)."""
    if habit.frequency is HabitFrequency.DAILY:
        return True
    if habit.frequency is HabitFrequency.WEEKLY:
        return day.weekday() == policy.week_start
    return day.weekday() in habit.custom_days


def _later(candidate: tuple[datetime | None, int], current: tuple[datetime | None, int]) -> bool:
    cand_ts, cand_idx = candidate
    cur_ts, cur_idx = current
    if cand_ts is not None and cur_ts is not None and cand_ts != cur_ts:
        return cand_ts > cur_ts
    return cand_idx > cur_idx
