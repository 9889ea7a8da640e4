"""Real-time synchronization service using Redis pub/sub."""

import json
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import redis
import redis.asyncio as aioredis

from propertyledger.config import get_settings

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)
settings = get_settings()


class ReceiptEventType(StrEnum):
    """Event types pushed on an account's receipt channel."""

    RECEIPT_ADDED = "receipt_added"
    RECEIPT_REMOVED = "receipt_removed"


class ReceiptRemovalReason(StrEnum):
    """Why a receipt left the unprocessed queue."""

    PROCESSED = "processed"
    DELETED = "deleted"


def account_channel(account_id: int) -> str:
    """Redis channel name for an account's receipt events."""
    return f"account:{account_id}"


# Synchronous Redis client for use in API endpoints
_sync_redis: redis.Redis | None = None


def get_sync_redis() -> redis.Redis:
    """Get synchronous Redis client for publishing from API endpoints."""
    global _sync_redis
    if _sync_redis is None:
        _sync_redis = redis.from_url(settings.redis_url)
    return _sync_redis


def close_sync_redis() -> None:
    """Close the publishing client, if one was opened."""
    global _sync_redis
    if _sync_redis is not None:
        _sync_redis.close()
        _sync_redis = None


def publish_account_event(
    account_id: int, event_type: ReceiptEventType, data: dict | None = None
) -> None:
    """Publish an event to every connected session of an account.

    Called from API endpoints after commits. Delivery is at-least-once from
    the consumer's point of view; clients de-duplicate by receipt id.

    Args:
        account_id: The account (tenant) to publish to
        event_type: Type of event (receipt_added, receipt_removed)
        data: Optional event payload
    """
    try:
        redis_client = get_sync_redis()
        channel = account_channel(account_id)
        message = {
            "type": event_type,
            "account_id": account_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": data or {},
        }
        redis_client.publish(channel, json.dumps(message, default=str))
        logger.debug(f"Published {event_type} to {channel}")
    except Exception as e:
        # Don't fail the request if pub/sub fails
        logger.error(f"Failed to publish account event: {e}")


class RealtimeService:
    """Async Redis pub/sub service for WebSocket connections."""

    def __init__(self) -> None:
        self._redis: aioredis.Redis | None = None
        self._pubsub: PubSub | None = None

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(settings.redis_url)
        return self._redis

    async def subscribe(self, channel: str) -> AsyncIterator[dict]:
        """Subscribe to a Redis channel and yield messages."""
        redis_conn = await self._get_redis()
        self._pubsub = redis_conn.pubsub()
        await self._pubsub.subscribe(channel)

        try:
            async for message in self._pubsub.listen():
                if message["type"] == "message":
                    try:
                        data = json.loads(message["data"])
                        yield data
                    except json.JSONDecodeError:
                        logger.warning(f"Invalid JSON in pub/sub message: {message['data']}")
        finally:
            if self._pubsub:
                await self._pubsub.unsubscribe(channel)

    async def cleanup(self) -> None:
        """Clean up Redis connections."""
        if self._pubsub:
            await self._pubsub.close()
        if self._redis:
            await self._redis.close()
