"""Runs one activity event through streaks, achievements and XP.

Stages, in order:

  RECEIVED -> STREAK_UPDATED -> ACHIEVEMENTS_EVALUATED -> XP_APPLIED -> COMPLETED

The coordinator works on an already loaded ``ProgressionSnapshot`` and
returns a ``ProgressionOutcome`` listing every write the caller must make.
It touches no storage itself; the caller runs it inside one transaction so
a failure at any stage leaves nothing behind.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

import structlog

from questline.exceptions import InvalidInput
from questline.progression.achievements import AchievementCatalog
from questline.progression.calendar import LIFETIME_BUCKET, CalendarPolicy, ResetPeriod, UTC_POLICY
from questline.progression.evaluator import AchievementEvaluator, CounterObservation, Unlock, UnlockIndex
from questline.progression.habits import Habit, HabitLog, qualifying_days
from questline.progression.schemas import (
    ActivityEvent,
    ActivityKind,
    ProgressionResult,
    StreakSnapshot,
    UnlockedAchievement,
)
from questline.progression.seed import KIND_METRICS, XP_ACTIONS, Metric
from questline.progression.streak_tracker import StreakSummary, StreakTracker
from questline.progression.xp_ledger import XpAward, XpLedger

logger = structlog.get_logger()


class Stage(str, Enum):
    RECEIVED = "received"
    STREAK_UPDATED = "streak_updated"
    ACHIEVEMENTS_EVALUATED = "achievements_evaluated"
    XP_APPLIED = "xp_applied"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ProgressionSnapshot:
    """Stored state the event is applied to.

    ``counters`` maps (metric, bucket) to its value; only the lifetime bucket
    and the buckets of the event's day are needed. ``unlocks`` holds prior
    (key, bucket) unlock records.
    """

    user_id: str
    xp: int = 0
    counters: Mapping[tuple[str, str], int] = field(default_factory=dict)
    unlocks: Iterable[tuple[str, str]] = ()
    habit: Habit | None = None
    habit_logs: tuple[HabitLog, ...] = ()


@dataclass(frozen=True)
class ProgressionOutcome:
    result: ProgressionResult
    starting_xp: int
    base_xp: int
    award: XpAward
    counter_increments: dict[tuple[str, str], int]
    unlocks: list[Unlock]
    new_log: HabitLog | None = None
    streak: StreakSummary | None = None
    stages: tuple[Stage, ...] = ()


class ProgressionCoordinator:
    """Combines StreakTracker, AchievementEvaluator and XpLedger per event."""

    def __init__(
        self,
        catalog: AchievementCatalog,
        ledger: XpLedger | None = None,
        policy: CalendarPolicy = UTC_POLICY,
    ) -> None:
        self.catalog = catalog
        self.ledger = ledger or XpLedger()
        self.policy = policy
        self.evaluator = AchievementEvaluator(catalog)

    def process(
        self,
        event: ActivityEvent,
        snapshot: ProgressionSnapshot,
        now: datetime,
        policy: CalendarPolicy | None = None,
    ) -> ProgressionOutcome:
        policy = policy or self.policy
        stages = [Stage.RECEIVED]
        if snapshot.user_id != event.user_id:
            raise InvalidInput("Snapshot belongs to another user", user_id=event.user_id)

        day = policy.local_day(event.occurred_at)
        buckets = policy.buckets_for(day)

        # --- Streak ---
        new_log = None
        streak = None
        counts = True
        if event.kind is ActivityKind.HABIT_LOGGED:
            new_log, streak, counts = self._apply_habit_log(event, snapshot, day, now, policy)
        elif event.kind is ActivityKind.DAILY_LOGIN:
            # Only the first login of the local day pays.
            counts = snapshot.counters.get((Metric.LOGINS, buckets[ResetPeriod.DAILY]), 0) == 0
        stages.append(Stage.STREAK_UPDATED)

        # --- Counters and achievements ---
        base_xp = 0
        if counts:
            base_xp = event.xp if event.xp is not None else XP_ACTIONS[event.kind.value]

        increments = self._counter_increments(event, snapshot.counters, buckets, counts)
        counters = dict(snapshot.counters)
        for slot, amount in increments.items():
            counters[slot] = counters.get(slot, 0) + amount

        gauges = dict(event.gauges)
        if streak is not None:
            gauges[Metric.HABIT_STREAK] = streak.current_streak
        gauges[Metric.LEVEL] = self.ledger.curve.level_for(snapshot.xp + base_xp)

        observation = CounterObservation(day=day, buckets=buckets, counters=counters, gauges=gauges)
        touched = {metric for metric, _ in increments} | set(gauges)
        unlocks = self.evaluator.evaluate(observation, UnlockIndex(snapshot.unlocks), now, metrics=touched)
        stages.append(Stage.ACHIEVEMENTS_EVALUATED)

        # --- XP ---
        award = self.ledger.award_many(snapshot.xp, [base_xp, *(u.xp_reward for u in unlocks)])
        stages.append(Stage.XP_APPLIED)

        stages.append(Stage.COMPLETED)
        logger.info(
            "progression_processed",
            user_id=event.user_id,
            event_id=event.event_id,
            kind=event.kind.value,
            xp_awarded=award.xp_awarded,
            new_level=award.new_level,
            unlocked=[u.key for u in unlocks],
        )
        return ProgressionOutcome(
            result=_result(event, award, unlocks, streak, snapshot.habit),
            starting_xp=snapshot.xp,
            base_xp=base_xp,
            award=award,
            counter_increments=increments,
            unlocks=unlocks,
            new_log=new_log,
            streak=streak,
            stages=tuple(stages),
        )

    def settle(self, outcome: ProgressionOutcome, accepted: Iterable[tuple[str, str]]) -> ProgressionOutcome:
        """Drop unlocks storage refused as duplicates and recompute XP.

        Reward XP is only granted for unlock records that were actually written.
        """
        accepted = set(accepted)
        kept = [u for u in outcome.unlocks if (u.key, u.bucket) in accepted]
        if len(kept) == len(outcome.unlocks):
            return outcome

        logger.info(
            "unlocks_already_recorded",
            user_id=outcome.result.user_id,
            dropped=[u.key for u in outcome.unlocks if u not in kept],
        )
        award = self.ledger.award_many(outcome.starting_xp, [outcome.base_xp, *(u.xp_reward for u in kept)])
        result = outcome.result.model_copy(update={
            "xp_awarded": award.xp_awarded,
            "new_xp": award.new_xp,
            "new_level": award.new_level,
            "leveled_up": award.leveled_up,
            "unlocked_achievements": [to_unlocked_achievement(u) for u in kept],
        })
        return dataclasses.replace(outcome, result=result, award=award, unlocks=kept)

    def _apply_habit_log(
        self,
        event: ActivityEvent,
        snapshot: ProgressionSnapshot,
        day: date,
        now: datetime,
        policy: CalendarPolicy,
    ) -> tuple[HabitLog, StreakSummary, bool]:
        habit = snapshot.habit
        payload = event.habit
        if habit is None or habit.id != payload.habit_id:
            raise InvalidInput("Habit not loaded for habit event", habit_id=payload.habit_id)
        if habit.user_id != event.user_id:
            raise InvalidInput("Habit belongs to another user", habit_id=habit.id)
        log_day = payload.day or day
        if log_day > policy.local_day(now):
            raise InvalidInput("Habit log is dated in the future", habit_id=habit.id, day=log_day.isoformat())

        log = HabitLog(
            habit_id=habit.id,
            day=log_day,
            value=payload.value,
            logged_at=event.occurred_at,
            timer_started_at=payload.timer_started_at,
            timer_ended_at=payload.timer_ended_at,
        )
        before = qualifying_days(habit, snapshot.habit_logs)
        logs = (*snapshot.habit_logs, log)
        after = qualifying_days(habit, logs)
        # Only the log that turns a day into a completion earns XP and counts.
        newly_completed = log.day in after and log.day not in before

        streak = StreakTracker(policy).track(habit, logs, now)
        return log, streak, newly_completed

    def _counter_increments(
        self,
        event: ActivityEvent,
        counters: Mapping[tuple[str, str], int],
        buckets: Mapping[ResetPeriod, str],
        counts: bool,
    ) -> dict[tuple[str, str], int]:
        amounts: dict[str, int] = {Metric.ACTIONS: 1}
        if counts:
            for metric in KIND_METRICS[event.kind.value]:
                amounts[metric] = amounts.get(metric, 0) + 1
        for metric, amount in event.increments.items():
            if amount:
                amounts[metric] = amounts.get(metric, 0) + amount

        # First action of the day makes the day an active day.
        if counters.get((Metric.ACTIONS, buckets[ResetPeriod.DAILY]), 0) == 0:
            amounts[Metric.ACTIVE_DAYS] = amounts.get(Metric.ACTIVE_DAYS, 0) + 1

        increments: dict[tuple[str, str], int] = {}
        for metric, amount in amounts.items():
            increments[(metric, LIFETIME_BUCKET)] = amount
            for bucket in buckets.values():
                increments[(metric, bucket)] = amount
        return increments


def to_unlocked_achievement(unlock: Unlock) -> UnlockedAchievement:
    definition = unlock.definition
    return UnlockedAchievement(
        key=definition.key,
        name=definition.name or definition.key,
        category=definition.category,
        xp_reward=definition.xp_reward,
        tier=definition.tier,
        is_hidden=definition.is_hidden,
        bucket=unlock.bucket,
        unlocked_at=unlock.unlocked_at,
    )


def _result(
    event: ActivityEvent,
    award: XpAward,
    unlocks: list[Unlock],
    streak: StreakSummary | None,
    habit: Habit | None,
) -> ProgressionResult:
    snapshot = None
    if streak is not None and habit is not None:
        snapshot = StreakSnapshot(habit_id=habit.id, **dataclasses.asdict(streak))
    return ProgressionResult(
        event_id=event.event_id,
        user_id=event.user_id,
        xp_awarded=award.xp_awarded,
        new_xp=award.new_xp,
        previous_level=award.previous_level,
        new_level=award.new_level,
        leveled_up=award.leveled_up,
        unlocked_achievements=[to_unlocked_achievement(u) for u in unlocks],
        streak=snapshot,
    )
