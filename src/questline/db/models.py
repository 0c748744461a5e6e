"""ORM models for progression state.

Column types stay portable (no JSONB/INET) so the same models run on
PostgreSQL in production and SQLite in tests. The uniqueness guarantees the
engine relies on are plain constraints:

  user_achievements  UNIQUE(user_id, achievement_key, period_bucket)
  active_timers      PRIMARY KEY(user_id)          one timer per user
  processed_events   PRIMARY KEY(user_id, event_id)
  xp_ledger          UNIQUE(idempotency_key)
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from questline.db.base import Base


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserProgression(Base):
    """XP and the level cache. Level is only written together with xp."""

    __tablename__ = "user_progression"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------


class HabitRow(Base):
    """Habit definition plus the streak cache written by the progression service."""

    __tablename__ = "habits"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="boolean")
    frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="daily")
    target_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(16), nullable=True)
    custom_days: Mapped[str | None] = mapped_column(String(32), nullable=True)  # "0,2,4"
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_completions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class HabitLogRow(Base):
    """One log action. Same-day rows are reduced by the streak tracker."""

    __tablename__ = "habit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    habit_id: Mapped[str] = mapped_column(String(64), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timer_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    timer_ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ActiveTimerRow(Base):
    """Running duration timer. The primary key enforces one per user."""

    __tablename__ = "active_timers"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    habit_id: Mapped[str] = mapped_column(String(64), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementDefinitionRow(Base):
    """Catalog entry, seeded from questline.progression.seed."""

    __tablename__ = "achievement_definitions"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    metric: Mapped[str] = mapped_column(String(64), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requirement: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="one_time")
    reset_period: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserAchievement(Base):
    """Unlock record. ``period_bucket`` is "" for one-time achievements."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_key", "period_bucket", name="uq_user_achievements_user_key_bucket"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_key: Mapped[str] = mapped_column(String(64), nullable=False)
    period_bucket: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    counter_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ActivityCounter(Base):
    """Per-user counters: lifetime under bucket "*", per period under D:/W:/M: buckets."""

    __tablename__ = "activity_counters"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    metric: Mapped[str] = mapped_column(String(64), primary_key=True)
    bucket: Mapped[str] = mapped_column(String(32), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Idempotency and XP history
# ---------------------------------------------------------------------------


class ProcessedEvent(Base):
    """Activity events already applied; a second delivery is a no-op."""

    __tablename__ = "processed_events"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class XPLedger(Base):
    """Immutable XP transaction log with idempotency key."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
