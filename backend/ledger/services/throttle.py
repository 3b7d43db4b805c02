"""
Per-owner fixed-window throttle backed by Redis.

Limits how many recurring jobs run for one owner per window. It only shapes
throughput; materialization stays correct whether or not a job is throttled.
"""
import logging
import time
from typing import Callable, Optional

import redis

from ledger.config import get_settings

logger = logging.getLogger(__name__)


class OwnerThrottle:
    """
    Counts admissions per owner in ``{prefix}:throttle:{owner_id}:{window}``.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        limit: Optional[int] = None,
        period_seconds: Optional[int] = None,
        prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.limit = limit or settings.recurring_throttle_limit
        self.period_seconds = period_seconds or settings.recurring_throttle_period_seconds
        self.prefix = prefix or settings.event_channel_prefix
        self.clock = clock
        self._redis: Optional[redis.Redis] = None

    @property
    def redis(self) -> redis.Redis:
        """Lazy-load Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _key(self, owner_id: str, window: int) -> str:
        return f"{self.prefix}:throttle:{owner_id}:{window}"

    def acquire(self, owner_id: str) -> float:
        """
        Try to admit one job for ``owner_id``.

        Returns:
            0 when admitted, otherwise the seconds until the next window opens
        """
        now = self.clock()
        window = int(now // self.period_seconds)
        key = self._key(owner_id, window)

        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.period_seconds * 2)
            count, _ = pipe.execute()
        except redis.RedisError as e:
            logger.warning(f"Throttle unavailable, admitting job for {owner_id}: {e}")
            return 0.0

        if int(count) <= self.limit:
            return 0.0
        return (window + 1) * self.period_seconds - now
