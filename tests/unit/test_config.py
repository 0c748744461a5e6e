"""Settings tests: defaults, env overrides and calendar policy."""

from datetime import date, datetime, timezone

import pytest

from questline.config import Settings, get_settings
from questline.exceptions import InvalidInput


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.default_timezone == "UTC"
        assert settings.week_start == 0
        assert settings.level_curve_infinite is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("QL_DEFAULT_TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("QL_DAY_ROLLOVER_HOUR", "4")
        settings = Settings(_env_file=None)
        assert settings.default_timezone == "Europe/Berlin"
        assert settings.day_rollover_hour == 4

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestCalendarPolicy:
    def test_user_timezone_overrides_default(self):
        policy = Settings(_env_file=None).calendar_policy("Asia/Tokyo")
        assert policy.local_day(datetime(2026, 10, 14, 20, 0, tzinfo=timezone.utc)) == date(2026, 10, 15)

    def test_invalid_timezone(self):
        with pytest.raises(InvalidInput):
            Settings(_env_file=None, default_timezone="Nowhere/Special").calendar_policy()
