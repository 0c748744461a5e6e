"""Level thresholds and computation.

A curve is an ordered table of cumulative XP thresholds indexed by level
(level 1 = threshold 0). XP beyond the last threshold stays at the max level
unless the curve is built with ``infinite=True``, in which case levels keep
coming at the last defined gap.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from questline.exceptions import InvalidInput

LEVEL_XP_REQUIREMENTS: tuple[int, ...] = (
    0, 100, 250, 500, 1000, 1750, 2750, 4000, 5500, 7500,
    10000, 13000, 16500, 20500, 25000,
)


@dataclass(frozen=True)
class LevelProgress:
    """XP progress inside a level. ``required`` is ``math.inf`` at the cap."""

    current: int
    required: float
    percentage: float


class LevelCurve:
    """Maps cumulative XP to a level and in-level progress."""

    def __init__(self, thresholds: tuple[int, ...] | list[int] = LEVEL_XP_REQUIREMENTS, infinite: bool = False) -> None:
        thresholds = tuple(thresholds)
        if not thresholds:
            raise InvalidInput("Level curve needs at least one threshold")
        if any(not isinstance(t, int) or isinstance(t, bool) for t in thresholds):
            raise InvalidInput("Level thresholds must be integers", thresholds=list(thresholds))
        if thresholds[0] != 0:
            raise InvalidInput("Level 1 threshold must be 0", first=thresholds[0])
        for i in range(len(thresholds) - 1):
            if thresholds[i] >= thresholds[i + 1]:
                raise InvalidInput(
                    "Level thresholds must be strictly increasing",
                    level=i + 2,
                    threshold=thresholds[i + 1],
                )
        if infinite and len(thresholds) < 2:
            raise InvalidInput("An infinite curve needs at least two thresholds to derive its step")

        self._thresholds = thresholds
        self._infinite = infinite
        self._step = thresholds[-1] - thresholds[-2] if infinite else 0

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def max_level(self) -> int | None:
        """Highest reachable level, or None for an infinite curve."""
        return None if self._infinite else len(self._thresholds)

    def threshold_for(self, level: int) -> int:
        """Cumulative XP needed to reach ``level``."""
        if level < 1:
            raise InvalidInput("Levels start at 1", level=level)
        defined = len(self._thresholds)
        if level <= defined:
            return self._thresholds[level - 1]
        if not self._infinite:
            raise InvalidInput("Level beyond the curve cap", level=level, max_level=defined)
        return self._thresholds[-1] + (level - defined) * self._step

    def level_for(self, xp: int) -> int:
        """Highest level whose threshold is <= xp."""
        _check_xp(xp)
        defined = len(self._thresholds)
        if self._infinite and xp >= self._thresholds[-1]:
            return defined + (xp - self._thresholds[-1]) // self._step
        for i in range(defined - 1, -1, -1):
            if xp >= self._thresholds[i]:
                return i + 1
        return 1

    def progress_in_level(self, xp: int, level: int | None = None) -> LevelProgress:
        """Progress from the start of ``level`` (defaults to the level for xp) toward the next one."""
        _check_xp(xp)
        if level is None:
            level = self.level_for(xp)
        current = xp - self.threshold_for(level)

        if self.max_level is not None and level >= self.max_level:
            return LevelProgress(current=current, required=math.inf, percentage=100.0)

        required = self.threshold_for(level + 1) - self.threshold_for(level)
        percentage = min(100.0, 100.0 * current / required)
        return LevelProgress(current=current, required=required, percentage=percentage)

    def xp_to_next_level(self, xp: int) -> int | None:
        """XP still missing for the next level; None at the cap."""
        level = self.level_for(xp)
        if self.max_level is not None and level >= self.max_level:
            return None
        return self.threshold_for(level + 1) - xp


def _check_xp(xp: int) -> None:
    if xp < 0:
        raise InvalidInput("XP cannot be negative", xp=xp)


DEFAULT_CURVE = LevelCurve()
