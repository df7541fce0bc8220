"""
Redis Publisher implementations.

Publishes JSON responses and device events to Redis pub/sub topics.
Publishing is fire-and-forget: the receiver count is ignored and
failures are logged, never raised into command handlers.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from core.interfaces import DeviceRole, MessagePublisher
from infrastructure.settings import TopicSettings
from loggers import logger


def encode_body(body: dict[str, Any]) -> str:
    """Serialize a message body as compact JSON."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


# =============================================================================
# Redis Publisher
# =============================================================================


class RedisPublisher:
    """
    MessagePublisher backed by a Redis connection.
    """

    def __init__(self, redis: Redis) -> None:
        """
        Initialize the publisher.

        Args:
            redis: Redis client used only for PUBLISH.
        """
        self._redis = redis

    async def publish(self, topic: str, body: dict[str, Any]) -> None:
        message = encode_body(body)
        try:
            await self._redis.publish(topic, message)
            logger.debug(f"published to {topic}: {message}")
        except RedisError as e:
            logger.error(f"Publishing to {topic} failed: {e} (message: {message})")


# =============================================================================
# Response Publisher
# =============================================================================


class ResponsePublisher:
    """
    Builds the response and event bodies of the daemon.

    Attributes:
        publisher: Underlying MessagePublisher.
        topics: Topic names.
    """

    def __init__(self, publisher: MessagePublisher, topics: Optional[TopicSettings] = None) -> None:
        self._publisher = publisher
        self._topics = topics or TopicSettings()

    @property
    def topics(self) -> TopicSettings:
        return self._topics

    def response_topic(self, role: DeviceRole) -> str:
        if role == DeviceRole.HOPPER:
            return self._topics.hopper_response
        return self._topics.validator_response

    def event_topic(self, role: DeviceRole) -> str:
        if role == DeviceRole.HOPPER:
            return self._topics.hopper_event
        return self._topics.validator_event

    async def reply_with(self, topic: str, body: dict[str, Any]) -> None:
        """Publish an arbitrary response body."""
        await self._publisher.publish(topic, body)

    async def reply_ok(self, topic: str, response_id: str, correl_id: str) -> None:
        await self.reply_with(topic, {"msgId": response_id, "correlId": correl_id, "result": "ok"})

    async def reply_failed(self, topic: str, response_id: str, correl_id: str) -> None:
        await self.reply_with(
            topic, {"msgId": response_id, "correlId": correl_id, "result": "failed"}
        )

    async def reply_accepted(self, topic: str, response_id: str, correl_id: str) -> None:
        await self.reply_with(
            topic, {"msgId": response_id, "correlId": correl_id, "accepted": "true"}
        )

    async def reply_error(
        self, topic: str, correl_id: Optional[str], error: str, **extra: Any
    ) -> None:
        """
        Publish an error response.

        Args:
            topic: Response topic.
            correl_id: msgId of the request, None when it was not available.
            error: Error text.
            **extra: Additional fields appended after "error".
        """
        body: dict[str, Any] = {}
        if correl_id is not None:
            body["correlId"] = correl_id
        body["error"] = error
        body.update(extra)
        await self.reply_with(topic, body)

    async def publish_event(self, role: DeviceRole, body: dict[str, Any]) -> None:
        """Publish a device event on ``<role>-event``."""
        await self._publisher.publish(self.event_topic(role), body)
