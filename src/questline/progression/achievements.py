"""Achievement definitions and the validated catalog.

Every definition resolves to one rule variant:

  OneTime(requirement)        once, when the lifetime counter reaches it
  Repeatable(every)           at every new multiple of ``every``
  Periodic(period, requirement)
                              once per day/week/month bucket, counting
                              only activity inside that bucket

The evaluator matches on the variant, never on the raw type string.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from questline.exceptions import InvalidInput
from questline.progression.calendar import ResetPeriod

ONE_TIME_BUCKET = ""


class AchievementType(str, Enum):
    ONE_TIME = "one_time"
    REPEATABLE = "repeatable"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


PERIOD_FOR_TYPE: dict[AchievementType, ResetPeriod] = {
    AchievementType.DAILY: ResetPeriod.DAILY,
    AchievementType.WEEKLY: ResetPeriod.WEEKLY,
    AchievementType.MONTHLY: ResetPeriod.MONTHLY,
}


@dataclass(frozen=True)
class OneTime:
    requirement: int


@dataclass(frozen=True)
class Repeatable:
    every: int


@dataclass(frozen=True)
class Periodic:
    period: ResetPeriod
    requirement: int


Rule = OneTime | Repeatable | Periodic


@dataclass(frozen=True)
class AchievementDefinition:
    """Immutable catalog entry. ``tier`` and ``is_hidden`` never affect qualification."""

    key: str
    metric: str
    type: AchievementType
    requirement: int = 1
    xp_reward: int = 0
    category: str = "general"
    name: str = ""
    description: str = ""
    icon: str = ""
    is_hidden: bool = False
    reset_period: ResetPeriod | None = None
    tier: int = 1

    @property
    def rule(self) -> Rule:
        match self.type:
            case AchievementType.ONE_TIME:
                return OneTime(self.requirement)
            case AchievementType.REPEATABLE:
                return Repeatable(self.requirement)
            case AchievementType.DAILY | AchievementType.WEEKLY | AchievementType.MONTHLY:
                return Periodic(PERIOD_FOR_TYPE[self.type], self.requirement)
        raise InvalidInput(f"Unknown achievement type: {self.type}", key=self.key)


def definition_from_record(record: Mapping[str, Any]) -> AchievementDefinition:
    """Build and validate one definition from a seed/catalog record."""
    key = record.get("key")
    if not key or not isinstance(key, str):
        raise InvalidInput("Achievement key is required", record=dict(record))

    try:
        achievement_type = AchievementType(record.get("type", AchievementType.ONE_TIME))
    except ValueError as exc:
        raise InvalidInput(f"Unknown achievement type: {record.get('type')}", key=key) from exc

    requirement = record.get("requirement", 1)
    if not isinstance(requirement, int) or isinstance(requirement, bool) or requirement < 1:
        raise InvalidInput("Achievement requirement must be an integer >= 1", key=key, requirement=requirement)

    xp_reward = record.get("xp_reward", 0)
    if not isinstance(xp_reward, int) or isinstance(xp_reward, bool) or xp_reward < 0:
        raise InvalidInput("Achievement xp_reward must be an integer >= 0", key=key, xp_reward=xp_reward)

    metric = record.get("metric")
    if not metric or not isinstance(metric, str):
        raise InvalidInput("Achievement metric is required", key=key)

    reset_period = _resolve_reset_period(key, achievement_type, record.get("reset_period"))

    return AchievementDefinition(
        key=key,
        metric=metric,
        type=achievement_type,
        requirement=requirement,
        xp_reward=xp_reward,
        category=record.get("category", "general"),
        name=record.get("name", key),
        description=record.get("description", ""),
        icon=record.get("icon", ""),
        is_hidden=bool(record.get("is_hidden", False)),
        reset_period=reset_period,
        tier=int(record.get("tier", 1)),
    )


def _resolve_reset_period(key: str, achievement_type: AchievementType, raw: Any) -> ResetPeriod | None:
    expected = PERIOD_FOR_TYPE.get(achievement_type)
    if raw is None:
        return expected
    try:
        period = ResetPeriod(raw)
    except ValueError as exc:
        raise InvalidInput(f"Unknown reset period: {raw}", key=key) from exc
    if expected is None:
        raise InvalidInput(
            f"{achievement_type.value} achievements cannot have a reset period",
            key=key,
            reset_period=period.value,
        )
    if period is not expected:
        raise InvalidInput(
            "Reset period does not match achievement type",
            key=key,
            type=achievement_type.value,
            reset_period=period.value,
        )
    return period


class AchievementCatalog:
    """Validated, read-only set of definitions keyed by achievement key."""

    def __init__(self, definitions: Iterable[AchievementDefinition]) -> None:
        self._by_key: dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.key in self._by_key:
                raise InvalidInput(f"Duplicate achievement key: {definition.key}", key=definition.key)
            self._by_key[definition.key] = definition

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> AchievementCatalog:
        return cls(definition_from_record(record) for record in records)

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self):
        return iter(self._by_key.values())

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def get(self, key: str) -> AchievementDefinition | None:
        return self._by_key.get(key)

    def for_metrics(self, metrics: Iterable[str]) -> list[AchievementDefinition]:
        """Definitions watching any of ``metrics``, in catalog order."""
        wanted = set(metrics)
        return [d for d in self._by_key.values() if d.metric in wanted]

    def disclosed(self, unlocked_keys: Iterable[str] = ()) -> list[AchievementDefinition]:
        """Entries a user may see: everything public plus hidden ones they unlocked."""
        unlocked = set(unlocked_keys)
        return [d for d in self._by_key.values() if not d.is_hidden or d.key in unlocked]
