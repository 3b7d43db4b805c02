"""
Redis Pub/Sub event publisher for ledger change notifications.
Downstream consumers (search indexing, summaries) subscribe per owner.
"""
import logging
from typing import Optional

import redis

from ledger.config import get_settings
from ledger.schemas import TransactionChangedEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Publishes transaction change events to Redis Pub/Sub channels.

    Channel format: {prefix}:transaction_changed:{owner_id}

    Publishing is fire-and-forget. A failed publish is logged and never
    propagated, since the ledger write it describes has already committed.
    """

    def __init__(self, redis_url: Optional[str] = None, channel_prefix: Optional[str] = None):
        """
        Initialize the event publisher.

        Args:
            redis_url: Redis connection URL. Defaults to the configured REDIS_URL.
            channel_prefix: Channel namespace. Defaults to the configured prefix.
        """
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.channel_prefix = channel_prefix or settings.event_channel_prefix
        self._redis: Optional[redis.Redis] = None

    @property
    def redis(self) -> redis.Redis:
        """Lazy-load Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _channel(self, owner_id: str) -> str:
        return f"{self.channel_prefix}:transaction_changed:{owner_id}"

    def publish_transaction_changed(self, event: TransactionChangedEvent) -> None:
        """
        Publish a transaction_changed event for the event's owner.

        Args:
            event: The change record to publish
        """
        try:
            channel = self._channel(event.owner_id)
            self.redis.publish(channel, event.model_dump_json())
            logger.debug(
                f"Published {event.change} event to {channel}: {event.transaction_id}"
            )
        except Exception as e:
            logger.error(f"Failed to publish transaction event: {e}")

    def close(self) -> None:
        """Close the Redis connection."""
        if self._redis:
            self._redis.close()
            self._redis = None
