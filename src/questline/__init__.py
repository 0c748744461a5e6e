"""questline: progression engine for XP, levels, achievements and habit streaks."""

__version__ = "0.1.0"
