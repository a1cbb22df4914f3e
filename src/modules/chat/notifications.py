"""Realtime fan-out of chat events over Redis pub/sub.

Each thread has its own channel (``private-chat.<thread_id>``); the
websocket gateway subscribes after authorizing the participant.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod

import redis.asyncio as redis

from src.config import settings
from src.modules.chat.constants import CHANNEL_PREFIX

logger = logging.getLogger(__name__)


def channel_for_thread(thread_id) -> str:
    return f"{CHANNEL_PREFIX}{thread_id}"


class NotificationSinkBase(ABC):
    @abstractmethod
    async def publish(self, event_name: str, payload: dict) -> None:
        """Deliver an event to connected participants. Fire-and-forget."""


class RedisNotificationSink(NotificationSinkBase):
    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self._redis = redis_client

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(settings.redis_url, decode_responses=True)
        return self._redis

    async def publish(self, event_name: str, payload: dict) -> None:
        client = await self._get_redis()
        channel = channel_for_thread(payload["thread_id"])
        receivers = await client.publish(
            channel,
            json.dumps({"event": event_name, "data": payload}, default=str),
        )
        logger.debug("Published %s to %s (%d receivers)", event_name, channel, receivers)


_sink: NotificationSinkBase | None = None


def get_notification_sink() -> NotificationSinkBase:
    global _sink
    if _sink is None:
        _sink = RedisNotificationSink()
    return _sink
