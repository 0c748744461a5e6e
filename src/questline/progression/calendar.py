"""Calendar policy: local days, weeks and reset-period buckets.

All instants handed to the engine must be timezone-aware. They are converted
to the user's local calendar day, optionally shifted by a rollover hour so
that e.g. 02:00 still counts for the previous day.

Period bucket identifiers:
  daily    D:2026-10-17
  weekly   W:2026-10-12   (local date the policy week starts on)
  monthly  M:2026-10
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from questline.exceptions import InvalidInput

LIFETIME_BUCKET = "*"


class ResetPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class CalendarPolicy:
    """How a user's instants map to calendar days and weeks."""

    tz: tzinfo
    week_start: int = 0  # 0 = Monday ... 6 = Sunday
    day_rollover_hour: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.week_start <= 6:
            raise InvalidInput("week_start must be a weekday number 0-6", week_start=self.week_start)
        if not 0 <= self.day_rollover_hour <= 23:
            raise InvalidInput("day_rollover_hour must be 0-23", day_rollover_hour=self.day_rollover_hour)

    @classmethod
    def for_timezone(cls, name: str, week_start: int = 0, day_rollover_hour: int = 0) -> CalendarPolicy:
        try:
            tz = ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise InvalidInput(f"Unknown timezone: {name}", timezone=name) from exc
        return cls(tz=tz, week_start=week_start, day_rollover_hour=day_rollover_hour)

    def local_day(self, instant: datetime) -> date:
        """Calendar day ``instant`` belongs to for this user."""
        if instant.tzinfo is None or instant.utcoffset() is None:
            raise InvalidInput("Naive datetimes are not accepted", instant=instant.isoformat())
        local = instant.astimezone(self.tz) - timedelta(hours=self.day_rollover_hour)
        return local.date()

    def week_of(self, day: date) -> date:
        """First day of the policy week containing ``day``."""
        return day - timedelta(days=(day.weekday() - self.week_start) % 7)

    def bucket(self, period: ResetPeriod, day: date) -> str:
        match period:
            case ResetPeriod.DAILY:
                return f"D:{day.isoformat()}"
            case ResetPeriod.WEEKLY:
                return f"W:{self.week_of(day).isoformat()}"
            case ResetPeriod.MONTHLY:
                return f"M:{day.year:04d}-{day.month:02d}"
        raise InvalidInput(f"Unknown reset period: {period}")

    def buckets_for(self, day: date) -> dict[ResetPeriod, str]:
        """All period buckets ``day`` falls in."""
        return {period: self.bucket(period, day) for period in ResetPeriod}


UTC_POLICY = CalendarPolicy.for_timezone("UTC")
