"""Level curve tests: thresholds, caps and in-level progress."""

import math

import pytest

from questline.exceptions import InvalidInput
from questline.progression.level_curve import DEFAULT_CURVE, LEVEL_XP_REQUIREMENTS, LevelCurve


class TestLevelFor:
    def test_level_1_at_zero_xp(self):
        assert DEFAULT_CURVE.level_for(0) == 1

    def test_level_boundary_99_xp(self):
        """99 XP is still level 1."""
        assert DEFAULT_CURVE.level_for(99) == 1

    @pytest.mark.parametrize("level", range(1, len(LEVEL_XP_REQUIREMENTS) + 1))
    def test_exact_threshold_reaches_level(self, level):
        assert DEFAULT_CURVE.level_for(LEVEL_XP_REQUIREMENTS[level - 1]) == level

    def test_capped_beyond_last_threshold(self):
        assert DEFAULT_CURVE.level_for(10_000_000) == 15
        assert DEFAULT_CURVE.max_level == 15

    def test_monotonic(self):
        levels = [DEFAULT_CURVE.level_for(xp) for xp in range(0, 30_000, 37)]
        assert levels == sorted(levels)

    def test_negative_xp_rejected(self):
        with pytest.raises(InvalidInput):
            DEFAULT_CURVE.level_for(-1)


class TestInfiniteCurve:
    def test_extends_with_last_gap(self):
        curve = LevelCurve([0, 100, 300], infinite=True)
        assert curve.max_level is None
        assert curve.level_for(299) == 2
        assert curve.level_for(300) == 3
        assert curve.level_for(500) == 4
        assert curve.level_for(699) == 4
        assert curve.threshold_for(5) == 700

    def test_needs_two_thresholds(self):
        with pytest.raises(InvalidInput):
            LevelCurve([0], infinite=True)


class TestProgressInLevel:
    def test_midway(self):
        progress = DEFAULT_CURVE.progress_in_level(175)
        assert progress.current == 75
        assert progress.required == 150
        assert progress.percentage == pytest.approx(50.0)

    def test_at_boundary(self):
        progress = DEFAULT_CURVE.progress_in_level(100)
        assert progress.current == 0
        assert progress.percentage == 0.0

    def test_max_level_is_full(self):
        progress = DEFAULT_CURVE.progress_in_level(30_000)
        assert progress.current == 5_000
        assert progress.required == math.inf
        assert progress.percentage == 100.0

    def test_explicit_level_is_clamped(self):
        progress = DEFAULT_CURVE.progress_in_level(400, level=2)
        assert progress.percentage == 100.0

    def test_xp_to_next_level(self):
        assert DEFAULT_CURVE.xp_to_next_level(95) == 5
        assert DEFAULT_CURVE.xp_to_next_level(25_000) is None


class TestCurveValidation:
    @pytest.mark.parametrize(
        "thresholds",
        [
            [],
            [10, 100],
            [0, 100, 100],
            [0, 200, 150],
            [0, 1.5],
        ],
    )
    def test_malformed_tables_rejected(self, thresholds):
        with pytest.raises(InvalidInput):
            LevelCurve(thresholds)

    def test_threshold_for_beyond_cap_rejected(self):
        with pytest.raises(InvalidInput):
            DEFAULT_CURVE.threshold_for(16)
