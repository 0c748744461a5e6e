"""SQL persistence for progression state.

Conflicting inserts (a retried event, a lost race on an unlock or a timer)
use ``INSERT ... ON CONFLICT DO NOTHING`` and report ``False`` instead of
raising, so duplicates stay invisible to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import (
    AchievementDefinitionRow,
    ActiveTimerRow,
    ActivityCounter,
    HabitLogRow,
    HabitRow,
    ProcessedEvent,
    UserAchievement,
    UserProgression,
    XPLedger,
)
from questline.exceptions import InvalidInput
from questline.progression.achievements import AchievementCatalog
from questline.progression.calendar import LIFETIME_BUCKET
from questline.progression.evaluator import Unlock
from questline.progression.habits import Habit, HabitFrequency, HabitLog, HabitType
from questline.progression.streak_tracker import StreakSummary
from questline.progression.timer_session import ActiveTimer

logger = structlog.get_logger()

_CLAIM_ATTEMPTS = 3


def _insert(db: AsyncSession, model):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# User progression
# ---------------------------------------------------------------------------


async def get_or_create_progression(db: AsyncSession, user_id: str) -> UserProgression:
    """Get or create the XP row for a user (xp=0, level=1)."""
    result = await db.execute(select(UserProgression).where(UserProgression.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is None:
        row = UserProgression(user_id=user_id, xp=0, level=1, updated_at=datetime.now(timezone.utc))
        db.add(row)
        await db.flush()
    return row


# ---------------------------------------------------------------------------
# Event dedupe
# ---------------------------------------------------------------------------


async def mark_event_processed(db: AsyncSession, user_id: str, event_id: str, kind: str, now: datetime) -> bool:
    """Claim an event id. Returns False if another delivery already claimed it."""
    stmt = _insert(db, ProcessedEvent).values(
        user_id=user_id, event_id=event_id, kind=kind, processed_at=now,
    ).on_conflict_do_nothing(index_elements=["user_id", "event_id"])
    result = await db.execute(stmt)
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------


async def load_counters(db: AsyncSession, user_id: str, buckets: Iterable[str]) -> dict[tuple[str, str], int]:
    """Lifetime counters plus the given period buckets."""
    wanted = {LIFETIME_BUCKET, *buckets}
    result = await db.execute(
        select(ActivityCounter.metric, ActivityCounter.bucket, ActivityCounter.value).where(
            ActivityCounter.user_id == user_id,
            ActivityCounter.bucket.in_(wanted),
        )
    )
    return {(metric, bucket): value for metric, bucket, value in result.all()}


async def apply_counter_increments(db: AsyncSession, user_id: str, increments: dict[tuple[str, str], int]) -> None:
    for (metric, bucket), amount in increments.items():
        stmt = _insert(db, ActivityCounter).values(user_id=user_id, metric=metric, bucket=bucket, value=amount)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "metric", "bucket"],
            set_={"value": ActivityCounter.value + stmt.excluded.value},
        )
        await db.execute(stmt)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


async def load_catalog(db: AsyncSession) -> AchievementCatalog:
    """Load and validate the stored catalog. Malformed rows raise InvalidInput."""
    result = await db.execute(select(AchievementDefinitionRow).order_by(AchievementDefinitionRow.sort_order))
    return AchievementCatalog.from_records(
        {
            "key": row.key,
            "name": row.name,
            "description": row.description,
            "icon": row.icon,
            "category": row.category,
            "metric": row.metric,
            "xp_reward": row.xp_reward,
            "requirement": row.requirement,
            "type": row.type,
            "reset_period": row.reset_period,
            "is_hidden": row.is_hidden,
            "tier": row.tier,
        }
        for row in result.scalars()
    )


async def load_unlocks(db: AsyncSession, user_id: str) -> list[tuple[str, str]]:
    result = await db.execute(
        select(UserAchievement.achievement_key, UserAchievement.period_bucket).where(
            UserAchievement.user_id == user_id
        )
    )
    return [(key, bucket) for key, bucket in result.all()]


async def load_unlock_history(
    db: AsyncSession, user_id: str, limit: int | None = None,
) -> list[tuple[str, str, datetime]]:
    """(key, bucket, unlocked_at) for each unlock record, newest first."""
    stmt = (
        select(UserAchievement.achievement_key, UserAchievement.period_bucket, UserAchievement.unlocked_at)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return [(key, bucket, _aware(unlocked_at)) for key, bucket, unlocked_at in result.all()]


async def record_unlock(db: AsyncSession, user_id: str, unlock: Unlock) -> bool:
    """Insert an unlock record. Returns False if (user, key, bucket) already exists."""
    stmt = _insert(db, UserAchievement).values(
        user_id=user_id,
        achievement_key=unlock.key,
        period_bucket=unlock.bucket,
        counter_value=unlock.counter_value,
        unlocked_at=unlock.unlocked_at,
    ).on_conflict_do_nothing(index_elements=["user_id", "achievement_key", "period_bucket"])
    result = await db.execute(stmt)
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# XP ledger
# ---------------------------------------------------------------------------


async def add_ledger_entry(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    source_id: str | None,
    description: str | None,
    idempotency_key: str,
    now: datetime,
) -> bool:
    stmt = _insert(db, XPLedger).values(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        idempotency_key=idempotency_key,
        created_at=now,
    ).on_conflict_do_nothing(index_elements=["idempotency_key"])
    result = await db.execute(stmt)
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------


def habit_from_row(row: HabitRow) -> Habit:
    days = frozenset(int(d) for d in row.custom_days.split(",") if d) if row.custom_days else frozenset()
    return Habit(
        id=row.id,
        user_id=row.user_id,
        type=HabitType(row.type),
        frequency=HabitFrequency(row.frequency),
        target_value=row.target_value,
        unit=row.unit,
        custom_days=days,
    )


async def load_habit(db: AsyncSession, user_id: str, habit_id: str) -> Habit:
    result = await db.execute(select(HabitRow).where(HabitRow.id == habit_id))
    row = result.scalar_one_or_none()
    if row is None or row.user_id != user_id:
        raise InvalidInput("Unknown habit", habit_id=habit_id, user_id=user_id)
    return habit_from_row(row)


async def load_habit_logs(db: AsyncSession, habit_id: str) -> list[HabitLog]:
    result = await db.execute(
        select(HabitLogRow).where(HabitLogRow.habit_id == habit_id).order_by(HabitLogRow.logged_at, HabitLogRow.id)
    )
    return [
        HabitLog(
            habit_id=row.habit_id,
            day=row.day,
            value=row.value,
            logged_at=_aware(row.logged_at),
            timer_started_at=_aware(row.timer_started_at),
            timer_ended_at=_aware(row.timer_ended_at),
        )
        for row in result.scalars()
    ]


async def add_habit_log(db: AsyncSession, user_id: str, log: HabitLog) -> None:
    db.add(HabitLogRow(
        user_id=user_id,
        habit_id=log.habit_id,
        day=log.day,
        value=log.value,
        logged_at=log.logged_at,
        timer_started_at=log.timer_started_at,
        timer_ended_at=log.timer_ended_at,
    ))
    await db.flush()


async def load_active_habits(db: AsyncSession, user_id: str) -> list[Habit]:
    result = await db.execute(
        select(HabitRow).where(HabitRow.user_id == user_id, HabitRow.is_archived.is_(False)).order_by(HabitRow.id)
    )
    return [habit_from_row(row) for row in result.scalars()]


async def save_streak(db: AsyncSession, habit_id: str, summary: StreakSummary, now: datetime) -> None:
    """Refresh the streak cache. Only called with a freshly recomputed summary."""
    row = await db.get(HabitRow, habit_id)
    if row is None:
        raise InvalidInput("Unknown habit", habit_id=habit_id)
    row.current_streak = summary.current_streak
    row.longest_streak = summary.longest_streak
    row.total_completions = summary.total_completions
    row.updated_at = now
    await db.flush()


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


class SqlTimerRegistry:
    """Timer registry backed by ``active_timers``; the user_id key is the lock."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def claim(self, timer: ActiveTimer) -> ActiveTimer | None:
        for _ in range(_CLAIM_ATTEMPTS):
            stmt = _insert(self.db, ActiveTimerRow).values(
                user_id=timer.user_id, habit_id=timer.habit_id, started_at=timer.started_at,
            ).on_conflict_do_nothing(index_elements=["user_id"])
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                return None
            holder = await self.get(timer.user_id)
            if holder is not None:
                logger.debug("timer_claim_lost", user_id=timer.user_id, habit_id=timer.habit_id)
                return holder
            # Holder stopped between our insert and the lookup; try again.
        msg = f"Timer claim for user {timer.user_id} did not settle"
        raise RuntimeError(msg)

    async def release(self, user_id: str, habit_id: str) -> ActiveTimer | None:
        holder = await self.get(user_id)
        if holder is None or holder.habit_id != habit_id:
            return None
        result = await self.db.execute(
            delete(ActiveTimerRow).where(ActiveTimerRow.user_id == user_id, ActiveTimerRow.habit_id == habit_id)
        )
        # A concurrent stop may have removed it first.
        return holder if result.rowcount == 1 else None

    async def get(self, user_id: str) -> ActiveTimer | None:
        result = await self.db.execute(
            select(ActiveTimerRow).where(ActiveTimerRow.user_id == user_id).execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return ActiveTimer(user_id=row.user_id, habit_id=row.habit_id, started_at=_aware(row.started_at))
