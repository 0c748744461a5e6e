"""XP awards with level-up detection.

The ledger is a pure transformation: it never deduplicates. Exactly-once
awarding is handled by the coordinator (event id) and the evaluator (unlock
records).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from questline.exceptions import InvalidInput
from questline.progression.level_curve import DEFAULT_CURVE, LevelCurve


@dataclass(frozen=True)
class XpAward:
    xp_awarded: int
    new_xp: int
    previous_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level

    @property
    def levels_gained(self) -> int:
        return self.new_level - self.previous_level


class XpLedger:
    """Applies non-negative XP deltas to a cumulative total."""

    def __init__(self, curve: LevelCurve = DEFAULT_CURVE) -> None:
        self.curve = curve

    def award(self, current_xp: int, delta: int) -> XpAward:
        """Add ``delta`` XP. A zero delta still recomputes the level."""
        if delta < 0:
            raise InvalidInput("XP delta cannot be negative", delta=delta)
        if current_xp < 0:
            raise InvalidInput("Current XP cannot be negative", xp=current_xp)

        new_xp = current_xp + delta
        return XpAward(
            xp_awarded=delta,
            new_xp=new_xp,
            previous_level=self.curve.level_for(current_xp),
            new_level=self.curve.level_for(new_xp),
        )

    def award_many(self, current_xp: int, deltas: Iterable[int]) -> XpAward:
        """Sum several rewards into one award so level-up is evaluated once."""
        deltas = list(deltas)
        for delta in deltas:
            if delta < 0:
                raise InvalidInput("XP delta cannot be negative", delta=delta)
        return self.award(current_xp, sum(deltas))
