"""Habit streaks derived from log history.

Streaks are never stored incrementally: every call recomputes current and
longest streak from the full history, so a partial update elsewhere cannot
make them drift.

Policy by frequency:
  daily   one slot per calendar day
  weekly  one slot per policy week; any qualifying day fills the week
  custom  one slot per scheduled weekday; other days are skipped entirely

The slot containing "now" never breaks a streak: until it is over, an
unfilled current slot keeps the streak alive.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from questline.progression.calendar import CalendarPolicy
from questline.progression.habits import Habit, HabitFrequency, HabitLog, qualifying_days

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(weeks=1)


@dataclass(frozen=True)
class StreakSummary:
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0
    completed_today: bool = False
    last_completed_on: date | None = None


class StreakTracker:
    """Computes streak summaries for one calendar policy."""

    def __init__(self, policy: CalendarPolicy) -> None:
        self.policy = policy

    def track(self, habit: Habit, logs: Iterable[HabitLog], now: datetime) -> StreakSummary:
        today = self.policy.local_day(now)
        # Logs dated after "now" are ignored until their day comes.
        days = {d for d in qualifying_days(habit, logs) if d <= today}
        if not days:
            return StreakSummary()

        if habit.frequency is HabitFrequency.WEEKLY:
            weeks = {self.policy.week_of(d) for d in days}
            current, longest = _walk(weeks, self.policy.week_of(today), ONE_WEEK, lambda _slot: True)
        elif habit.frequency is HabitFrequency.CUSTOM:
            scheduled = habit.custom_days
            current, longest = _walk(days, today, ONE_DAY, lambda slot: slot.weekday() in scheduled)
        else:
            current, longest = _walk(days, today, ONE_DAY, lambda _slot: True)

        return StreakSummary(
            current_streak=current,
            longest_streak=longest,
            total_completions=len(days),
            completed_today=today in days,
            last_completed_on=max(days),
        )


def _walk(
    filled: set[date],
    current_slot: date,
    step: timedelta,
    scheduled: Callable[[date], bool],
) -> tuple[int, int]:
    """Walk slots from the earliest filled one to the current one.

    Returns (current run, longest run).
    """
    run = 0
    longest = 0
    slot = min(filled)
    while slot <= current_slot:
        if scheduled(slot):
            if slot in filled:
                run += 1
                longest = max(longest, run)
            elif slot != current_slot:
                run = 0
        slot += step
    return run, longest
