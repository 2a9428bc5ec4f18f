"""Redis client and the notification stream sink.

The outbox relay publishes notifications to a Redis stream; the external
notification/email system consumes that stream with its own consumer group.

Usage:
    from devmarket.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    sink = RedisStreamSink(redis, stream="devmarket:notifications")
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import redis.asyncio as aioredis

from devmarket.config import get_settings
from devmarket.logging_config import get_logger

if TYPE_CHECKING:
    from devmarket.infrastructure.database.orm_models import OutboxEvent

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def redis_available() -> bool:
    return _redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Notification stream ---


class RedisStreamSink:
    """Publishes outbox events to a capped Redis stream with XADD."""

    def __init__(self, client: aioredis.Redis, stream: str, maxlen: int | None = None) -> None:
        self._client = client
        self._stream = stream
        self._maxlen = maxlen

    async def publish(self, event: OutboxEvent) -> None:
        fields = {
            "event_id": str(event.id),
            "type": event.event_type,
            "recipients": json.dumps(event.recipients),
            "payload": json.dumps(event.payload, default=str),
            "created_at": event.created_at.isoformat(),
        }
        message_id = await self._client.xadd(
            self._stream,
            fields,
            maxlen=self._maxlen,
            approximate=True,
        )
        logger.debug("notification.published", stream=self._stream, message_id=message_id)
