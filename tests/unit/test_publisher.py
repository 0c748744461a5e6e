"""Outcome publisher tests with a mocked Redis client."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from questline.progression.publisher import OutcomePublisher
from questline.progression.schemas import ProgressionResult, UnlockedAchievement

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


def _result(**overrides):
    data = {"event_id": "e1", "user_id": "u1", "xp_awarded": 30, "new_xp": 125,
            "previous_level": 2, "new_level": 3, "leveled_up": True}
    data.update(overrides)
    return ProgressionResult(**data)


class TestPublish:
    @pytest.mark.asyncio
    async def test_one_combined_message(self):
        redis = AsyncMock()
        unlocked = UnlockedAchievement(key="k", name="K", category="habits", xp_reward=20, unlocked_at=NOW, bucket="#1")
        published = await OutcomePublisher(redis, "chan").publish(_result(unlocked_achievements=[unlocked]))

        assert published is True
        redis.publish.assert_awaited_once()
        channel, message = redis.publish.call_args.args
        payload = json.loads(message)
        assert channel == "chan"
        assert payload["leveled_up"] is True
        assert payload["new_level"] == 3
        assert [a["key"] for a in payload["achievements"]] == ["k"]

    @pytest.mark.asyncio
    async def test_nothing_to_announce(self):
        redis = AsyncMock()
        result = _result(leveled_up=False, new_level=2)
        assert await OutcomePublisher(redis).publish(result) is False
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicates_not_published(self):
        redis = AsyncMock()
        assert await OutcomePublisher(redis).publish(_result(duplicate=True)) is False

    @pytest.mark.asyncio
    async def test_redis_failure_is_swallowed(self):
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("down")
        assert await OutcomePublisher(redis).publish(_result()) is False

    @pytest.mark.asyncio
    async def test_no_client(self):
        assert await OutcomePublisher(None).publish(_result()) is False


def test_create_redis_from_settings_url():
    import redis.asyncio as redis

    from questline.config import Settings
    from questline.progression.publisher import create_redis

    client = create_redis(Settings(_env_file=None).redis_url)
    assert isinstance(client, redis.Redis)
