"""Progression engine: XP, levels, achievements, habit streaks and timers."""
