"""Achievement evaluation against activity counters.

Unlock records are keyed by (key, bucket):
  one_time    bucket ""            at most one record ever
  repeatable  bucket "#<n>"        one record per multiple n of the requirement
  periodic    bucket "D:/W:/M:..." one record per reset-period instance

The evaluator is pure. It never re-awards a (key, bucket) it has been told
about, and it records its own unlocks so a repeated call within one event is
a no-op.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime

import structlog

from questline.progression.achievements import (
    ONE_TIME_BUCKET,
    AchievementCatalog,
    AchievementDefinition,
    OneTime,
    Periodic,
    Repeatable,
)
from questline.progression.calendar import LIFETIME_BUCKET, ResetPeriod

logger = structlog.get_logger()

REPEAT_PREFIX = "#"

# Repeatable multiples unlocked per evaluation; the rest follow on later events.
MAX_REPEATS_PER_EVALUATION = 10


def repeat_bucket(multiple: int) -> str:
    return f"{REPEAT_PREFIX}{multiple}"


def parse_repeat_bucket(bucket: str) -> int | None:
    if not bucket.startswith(REPEAT_PREFIX):
        return None
    try:
        return int(bucket[len(REPEAT_PREFIX):])
    except ValueError:
        return None


@dataclass(frozen=True)
class CounterObservation:
    """Counter values as they stand after the current event.

    ``counters`` maps (metric, bucket) to a value; the lifetime total lives
    under bucket "*". Gauges (values that are measured, not accumulated)
    use the same value for every bucket.
    """

    day: date
    buckets: Mapping[ResetPeriod, str]
    counters: Mapping[tuple[str, str], int] = field(default_factory=dict)
    gauges: Mapping[str, int] = field(default_factory=dict)

    def lifetime(self, metric: str) -> int:
        if metric in self.gauges:
            return self.gauges[metric]
        return self.counters.get((metric, LIFETIME_BUCKET), 0)

    def in_period(self, metric: str, period: ResetPeriod) -> int:
        if metric in self.gauges:
            return self.gauges[metric]
        return self.counters.get((metric, self.buckets[period]), 0)


class UnlockIndex:
    """Prior unlock records for one user."""

    def __init__(self, records: Iterable[tuple[str, str]] = ()) -> None:
        self._records: set[tuple[str, str]] = set()
        self._last_multiple: dict[str, int] = {}
        for key, bucket in records:
            self.add(key, bucket)

    def add(self, key: str, bucket: str) -> bool:
        """Record an unlock. Returns False if it was already known."""
        if (key, bucket) in self._records:
            return False
        self._records.add((key, bucket))
        multiple = parse_repeat_bucket(bucket)
        if multiple is not None:
            self._last_multiple[key] = max(self._last_multiple.get(key, 0), multiple)
        return True

    def has(self, key: str, bucket: str) -> bool:
        return (key, bucket) in self._records

    def last_multiple(self, key: str) -> int:
        return self._last_multiple.get(key, 0)

    def keys(self) -> set[str]:
        return {key for key, _ in self._records}

    def __len__(self) -> int:
        return len(self._records)


@dataclass(frozen=True)
class Unlock:
    definition: AchievementDefinition
    bucket: str
    unlocked_at: datetime
    counter_value: int

    @property
    def key(self) -> str:
        return self.definition.key

    @property
    def xp_reward(self) -> int:
        return self.definition.xp_reward


@dataclass(frozen=True)
class AchievementProgress:
    key: str
    current: int
    required: int
    unlocked: bool

    @property
    def percentage(self) -> float:
        return min(100.0, 100.0 * self.current / self.required)


class AchievementEvaluator:
    """Determines newly qualifying achievements for one user."""

    def __init__(self, catalog: AchievementCatalog) -> None:
        self.catalog = catalog

    def evaluate(
        self,
        observation: CounterObservation,
        unlocked: UnlockIndex,
        now: datetime,
        metrics: Iterable[str] | None = None,
    ) -> list[Unlock]:
        """Unlocks earned by ``observation``.

        ``metrics`` restricts evaluation to definitions watching those
        counters (the ones the current event touched); None checks all.
        """
        definitions = list(self.catalog) if metrics is None else self.catalog.for_metrics(metrics)
        unlocks: list[Unlock] = []
        for definition in definitions:
            for bucket, value in self._qualifying_buckets(definition, observation, unlocked):
                if not unlocked.add(definition.key, bucket):
                    continue
                unlocks.append(Unlock(definition=definition, bucket=bucket, unlocked_at=now, counter_value=value))
                logger.debug("achievement_qualified", key=definition.key, bucket=bucket, value=value)
        return unlocks

    def _qualifying_buckets(
        self,
        definition: AchievementDefinition,
        observation: CounterObservation,
        unlocked: UnlockIndex,
    ) -> list[tuple[str, int]]:
        match definition.rule:
            case OneTime(requirement=requirement):
                value = observation.lifetime(definition.metric)
                if value >= requirement and not unlocked.has(definition.key, ONE_TIME_BUCKET):
                    return [(ONE_TIME_BUCKET, value)]
                return []
            case Repeatable(every=every):
                value = observation.lifetime(definition.metric)
                reached = value // every
                last = unlocked.last_multiple(definition.key)
                reached = min(reached, last + MAX_REPEATS_PER_EVALUATION)
                return [(repeat_bucket(m), value) for m in range(last + 1, reached + 1)]
            case Periodic(period=period, requirement=requirement):
                bucket = observation.buckets[period]
                value = observation.in_period(definition.metric, period)
                if value >= requirement and not unlocked.has(definition.key, bucket):
                    return [(bucket, value)]
                return []
        return []

    def progress(
        self,
        definition: AchievementDefinition,
        observation: CounterObservation,
        unlocked: UnlockIndex,
    ) -> AchievementProgress:
        """Progress toward the next unlock of ``definition``."""
        match definition.rule:
            case OneTime(requirement=requirement):
                done = unlocked.has(definition.key, ONE_TIME_BUCKET)
                current = requirement if done else min(observation.lifetime(definition.metric), requirement)
                return AchievementProgress(definition.key, current, requirement, done)
            case Repeatable(every=every):
                value = observation.lifetime(definition.metric)
                since_last = max(0, value - unlocked.last_multiple(definition.key) * every)
                return AchievementProgress(
                    definition.key, min(since_last, every), every, unlocked.last_multiple(definition.key) > 0
                )
            case Periodic(period=period, requirement=requirement):
                bucket = observation.buckets[period]
                done = unlocked.has(definition.key, bucket)
                value = observation.in_period(definition.metric, period)
                return AchievementProgress(definition.key, requirement if done else min(value, requirement), requirement, done)
        return AchievementProgress(definition.key, 0, definition.requirement, False)
