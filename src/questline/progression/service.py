"""Progression service: loads state, runs the coordinator, writes the outcome.

All writes for one event happen in the caller's session. ``process_event``
owns the whole transaction and publishes only after commit.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from questline.config import Settings, get_settings
from questline.progression import repository
from questline.progression.achievements import AchievementCatalog
from questline.progression.calendar import CalendarPolicy
from questline.progression.coordinator import ProgressionCoordinator, ProgressionSnapshot, to_unlocked_achievement
from questline.progression.evaluator import AchievementProgress, CounterObservation, Unlock, UnlockIndex
from questline.progression.level_curve import LevelCurve, LevelProgress, LEVEL_XP_REQUIREMENTS
from questline.progression.publisher import OutcomePublisher
from questline.progression.schemas import (
    ActivityEvent,
    ActivityKind,
    HabitPayload,
    ProgressionResult,
    UnlockedAchievement,
)
from questline.progression.seed import Metric
from questline.progression.streak_tracker import StreakTracker
from questline.progression.timer_session import ActiveTimer, TimerSession
from questline.progression.xp_ledger import XpLedger

logger = structlog.get_logger()


def build_ledger(settings: Settings) -> XpLedger:
    return XpLedger(LevelCurve(LEVEL_XP_REQUIREMENTS, infinite=settings.level_curve_infinite))


class ProgressionService:
    """Applies activity events for users against the SQL store."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: AchievementCatalog,
        ledger: XpLedger | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.coordinator = ProgressionCoordinator(catalog, ledger or build_ledger(self.settings))

    @property
    def ledger(self) -> XpLedger:
        return self.coordinator.ledger

    async def record_activity(self, event: ActivityEvent, now: datetime) -> ProgressionResult:
        """Apply ``event`` once. A repeated event id returns a ``duplicate`` result."""
        progression = await repository.get_or_create_progression(self.db, event.user_id)
        claimed = await repository.mark_event_processed(
            self.db, event.user_id, event.event_id, event.kind.value, now,
        )
        if not claimed:
            logger.info("duplicate_event_ignored", user_id=event.user_id, event_id=event.event_id)
            level = self.ledger.curve.level_for(progression.xp)
            return ProgressionResult(
                event_id=event.event_id,
                user_id=event.user_id,
                new_xp=progression.xp,
                previous_level=level,
                new_level=level,
                duplicate=True,
            )

        policy = self.settings.calendar_policy(progression.timezone)
        buckets = policy.buckets_for(policy.local_day(event.occurred_at))

        habit = None
        logs: list = []
        if event.kind is ActivityKind.HABIT_LOGGED:
            habit = await repository.load_habit(self.db, event.user_id, event.habit.habit_id)
            logs = await repository.load_habit_logs(self.db, habit.id)

        snapshot = ProgressionSnapshot(
            user_id=event.user_id,
            xp=progression.xp,
            counters=await repository.load_counters(self.db, event.user_id, buckets.values()),
            unlocks=await repository.load_unlocks(self.db, event.user_id),
            habit=habit,
            habit_logs=tuple(logs),
        )
        outcome = self.coordinator.process(event, snapshot, now, policy)

        accepted = []
        for unlock in outcome.unlocks:
            if await repository.record_unlock(self.db, event.user_id, unlock):
                accepted.append((unlock.key, unlock.bucket))
                logger.info("achievement_unlocked", user_id=event.user_id, key=unlock.key, bucket=unlock.bucket)
        outcome = self.coordinator.settle(outcome, accepted)

        await repository.apply_counter_increments(self.db, event.user_id, outcome.counter_increments)
        if outcome.new_log is not None:
            await repository.add_habit_log(self.db, event.user_id, outcome.new_log)
        if outcome.streak is not None:
            await repository.save_streak(self.db, habit.id, outcome.streak, now)

        award = outcome.award
        if award.xp_awarded:
            await repository.add_ledger_entry(
                self.db,
                user_id=event.user_id,
                amount=award.xp_awarded,
                source=event.kind.value,
                source_id=event.event_id,
                description=f"{event.kind.value} (+{len(outcome.unlocks)} achievements)",
                idempotency_key=f"event:{event.user_id}:{event.event_id}",
                now=now,
            )
            logger.info("xp_awarded", user_id=event.user_id, amount=award.xp_awarded, new_xp=award.new_xp)

        # Level is only ever written alongside the xp it was computed from.
        progression.xp = award.new_xp
        progression.level = award.new_level
        progression.updated_at = now
        await self.db.flush()

        if award.leveled_up:
            logger.info("level_up", user_id=event.user_id, old_level=award.previous_level, new_level=award.new_level)
        return outcome.result

    # --- Timers ---

    def _timers(self) -> TimerSession:
        return TimerSession(repository.SqlTimerRegistry(self.db))

    async def start_timer(self, user_id: str, habit_id: str, now: datetime) -> ActiveTimer:
        habit = await repository.load_habit(self.db, user_id, habit_id)
        return await self._timers().start(user_id, habit, now)

    async def stop_timer(self, user_id: str, habit_id: str, now: datetime) -> ProgressionResult:
        """Stop the timer and record the elapsed time as a habit log."""
        habit = await repository.load_habit(self.db, user_id, habit_id)
        progression = await repository.get_or_create_progression(self.db, user_id)
        policy = self.settings.calendar_policy(progression.timezone)

        log = await self._timers().stop(user_id, habit, now, policy)
        event = ActivityEvent(
            event_id=f"timer:{habit.id}:{log.timer_started_at.isoformat()}",
            user_id=user_id,
            kind=ActivityKind.HABIT_LOGGED,
            occurred_at=now,
            habit=HabitPayload(
                habit_id=habit.id,
                value=log.value,
                day=log.day,
                timer_started_at=log.timer_started_at,
                timer_ended_at=log.timer_ended_at,
            ),
        )
        return await self.record_activity(event, now)

    async def active_timer(self, user_id: str) -> ActiveTimer | None:
        return await self._timers().active(user_id)

    # --- Read side ---

    async def level_progress(self, user_id: str) -> LevelProgress:
        progression = await repository.get_or_create_progression(self.db, user_id)
        return self.ledger.curve.progress_in_level(progression.xp)

    async def achievement_progress(self, user_id: str, now: datetime) -> list[AchievementProgress]:
        """Progress on every achievement the user may see."""
        progression = await repository.get_or_create_progression(self.db, user_id)
        policy = self.settings.calendar_policy(progression.timezone)
        day = policy.local_day(now)
        buckets = policy.buckets_for(day)

        unlocked = UnlockIndex(await repository.load_unlocks(self.db, user_id))
        observation = CounterObservation(
            day=day,
            buckets=buckets,
            counters=await repository.load_counters(self.db, user_id, buckets.values()),
            gauges={
                Metric.LEVEL: self.ledger.curve.level_for(progression.xp),
                Metric.HABIT_STREAK: await self._best_current_streak(user_id, policy, now),
            },
        )
        evaluator = self.coordinator.evaluator
        return [
            evaluator.progress(definition, observation, unlocked)
            for definition in self.coordinator.catalog.disclosed(unlocked.keys())
        ]

    async def unlocked_achievements(self, user_id: str) -> list[UnlockedAchievement]:
        """Every unlock record, newest first."""
        return self._history(await repository.load_unlock_history(self.db, user_id))

    async def recent_achievements(self, user_id: str, limit: int = 3) -> list[UnlockedAchievement]:
        return self._history(await repository.load_unlock_history(self.db, user_id, limit=limit))

    def _history(self, records) -> list[UnlockedAchievement]:
        achievements = []
        for key, bucket, unlocked_at in records:
            definition = self.coordinator.catalog.get(key)
            if definition is None:
                # Retired from the catalog.
                continue
            unlock = Unlock(definition=definition, bucket=bucket, unlocked_at=unlocked_at, counter_value=0)
            achievements.append(to_unlocked_achievement(unlock))
        return achievements

    async def _best_current_streak(self, user_id: str, policy: CalendarPolicy, now: datetime) -> int:
        # The stored streak cache is only refreshed by habit events.
        tracker = StreakTracker(policy)
        best = 0
        for habit in await repository.load_active_habits(self.db, user_id):
            logs = await repository.load_habit_logs(self.db, habit.id)
            best = max(best, tracker.track(habit, logs, now).current_streak)
        return best


async def process_event(
    session_factory: async_sessionmaker[AsyncSession],
    event: ActivityEvent,
    now: datetime,
    catalog: AchievementCatalog,
    publisher: OutcomePublisher | None = None,
    settings: Settings | None = None,
) -> ProgressionResult:
    """Run one event in its own transaction, then publish the result."""
    async with session_factory() as session:
        async with session.begin():
            result = await ProgressionService(session, catalog, settings=settings).record_activity(event, now)
    if publisher is not None:
        await publisher.publish(result)
    return result
