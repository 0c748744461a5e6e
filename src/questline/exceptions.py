"""Typed failures raised by the progression engine.

Only two outcomes are expected at runtime (timer conflicts); everything else
signals bad input. Duplicate awards are never errors: they resolve to no-ops.
"""

from __future__ import annotations

from typing import Any


class ProgressionError(Exception):
    """Base class for engine failures.

    ``reason`` is a stable machine-readable code the caller can render.
    """

    reason = "progression_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "message": self.message, **self.context}


class InvalidInput(ProgressionError, ValueError):
    """Raised for negative XP, malformed catalog/curve data or naive datetimes."""

    reason = "invalid_input"


class ActiveTimerConflict(ProgressionError):
    """Raised when a user already has a running timer on any habit."""

    reason = "active_timer_conflict"

    def __init__(self, user_id: str, active_habit_id: str) -> None:
        super().__init__(
            f"User {user_id} already has an active timer on habit {active_habit_id}",
            user_id=user_id,
            active_habit_id=active_habit_id,
        )
        self.user_id = user_id
        self.active_habit_id = active_habit_id


class NoActiveTimer(ProgressionError):
    """Raised when stopping a habit that has no running timer."""

    reason = "no_active_timer"

    def __init__(self, user_id: str, habit_id: str) -> None:
        super().__init__(
            f"No active timer for user {user_id} on habit {habit_id}",
            user_id=user_id,
            habit_id=habit_id,
        )
        self.user_id = user_id
        self.habit_id = habit_id
