"""Broadcast progression results over Redis pub/sub.

One combined message per event carries the level change and every unlock;
delivery and formatting are up to subscribers. Publishing is best effort.
"""

from __future__ import annotations

import json
import logging

import redis.asyncio as redis

from questline.progression.schemas import ProgressionResult

logger = logging.getLogger(__name__)


class OutcomePublisher:
    def __init__(self, client: redis.Redis | None, channel: str = "pubsub:progression") -> None:
        self.client = client
        self.channel = channel

    @staticmethod
    def should_publish(result: ProgressionResult) -> bool:
        """Only level-ups and unlocks are worth a notification."""
        return not result.duplicate and (result.leveled_up or bool(result.unlocked_achievements))

    @staticmethod
    def payload(result: ProgressionResult) -> dict:
        return {
            "type": "progression",
            "user_id": result.user_id,
            "event_id": result.event_id,
            "xp_awarded": result.xp_awarded,
            "new_xp": result.new_xp,
            "leveled_up": result.leveled_up,
            "previous_level": result.previous_level,
            "new_level": result.new_level,
            "achievements": [
                {
                    "key": a.key,
                    "name": a.name,
                    "category": a.category,
                    "tier": a.tier,
                    "xp_reward": a.xp_reward,
                    "bucket": a.bucket,
                }
                for a in result.unlocked_achievements
            ],
        }

    async def publish(self, result: ProgressionResult) -> bool:
        """Returns True when a message went out."""
        if self.client is None or not self.should_publish(result):
            return False
        try:
            await self.client.publish(self.channel, json.dumps(self.payload(result)))
        except Exception:
            logger.warning("Failed to publish progression outcome", exc_info=True)
            return False
        return True


def create_redis(url: str) -> redis.Redis:
    """Redis client for the publisher. Connects lazily on first command."""
    return redis.from_url(url, encoding="utf-8", decode_responses=True, max_connections=50)
