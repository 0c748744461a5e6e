"""Pydantic models for activity events and progression results."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

# Largest amount one event may add to a single counter.
MAX_INCREMENT = 10_000


class ActivityKind(str, Enum):
    HABIT_LOGGED = "habit_logged"
    EXPENSE_LOGGED = "expense_logged"
    DEADLINE_MET = "deadline_met"
    APPLICATION_SENT = "application_sent"
    APPLICATION_RESPONSE = "application_response"
    APPLICATION_INTERVIEW = "application_interview"
    MEDIA_COMPLETED = "media_completed"
    NOTE_CREATED = "note_created"
    GOAL_COMPLETED = "goal_completed"
    DAILY_LOGIN = "daily_login"
    SUBSCRIPTION_ADDED = "subscription_added"
    DEADLINE_CREATED = "deadline_created"
    CUSTOM = "custom"


# --- Input ---


class HabitPayload(BaseModel):
    habit_id: str
    value: float = Field(default=1, ge=0)
    # Defaults to the local day of ``occurred_at``.
    day: date | None = None
    timer_started_at: datetime | None = None
    timer_ended_at: datetime | None = None


class ActivityEvent(BaseModel):
    """One user action fed into the engine.

    ``event_id`` is the dedupe key: an event id is applied at most once per
    user. ``increments`` adds to extra counters, ``gauges`` sets measured
    values (e.g. a budget streak) for this evaluation only.
    """

    event_id: str = Field(min_length=1, max_length=128)
    user_id: str = Field(min_length=1, max_length=64)
    kind: ActivityKind
    occurred_at: datetime
    habit: HabitPayload | None = None
    increments: dict[str, int] = Field(default_factory=dict)
    gauges: dict[str, int] = Field(default_factory=dict)
    xp: int | None = Field(default=None, ge=0)

    @field_validator("occurred_at")
    @classmethod
    def _require_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("occurred_at must be timezone-aware")
        return value

    @field_validator("increments")
    @classmethod
    def _non_negative(cls, value: dict[str, int]) -> dict[str, int]:
        for metric, amount in value.items():
            if amount < 0:
                raise ValueError(f"increment for {metric} cannot be negative")
            if amount > MAX_INCREMENT:
                raise ValueError(f"increment for {metric} exceeds {MAX_INCREMENT}")
        return value

    @model_validator(mode="after")
    def _habit_payload(self) -> ActivityEvent:
        if self.kind is ActivityKind.HABIT_LOGGED and self.habit is None:
            raise ValueError("habit_logged events need a habit payload")
        return self


# --- Output ---


class UnlockedAchievement(BaseModel):
    key: str
    name: str
    category: str
    xp_reward: int
    tier: int = 1
    is_hidden: bool = False
    bucket: str = ""
    unlocked_at: datetime


class StreakSnapshot(BaseModel):
    habit_id: str
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0
    completed_today: bool = False
    last_completed_on: date | None = None


class ProgressionResult(BaseModel):
    event_id: str
    user_id: str
    xp_awarded: int = 0
    new_xp: int = 0
    previous_level: int = 1
    new_level: int = 1
    leveled_up: bool = False
    unlocked_achievements: list[UnlockedAchievement] = []
    streak: StreakSnapshot | None = None
    duplicate: bool = False
