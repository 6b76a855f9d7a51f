"""
Notification Dedupe Cache

Suppresses repeat notifications for the same key inside a short window.
Real-time listeners can deliver the same snapshot more than once; without
this, a single status change could push twice.

Implementations:
    - InMemoryDedupeCache: bounded key -> timestamp map with TTL eviction
    - RedisDedupeCache: ``SET key 1 NX PX window`` shared across processes

Version: 1.0.0
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def dedupe_key(order_id: str, status: str) -> str:
    return f"notif:{order_id}:{status}"


class BaseDedupeCache(ABC):
    """Interface for the notification debounce."""

    @abstractmethod
    async def should_send(self, key: str) -> bool:
        """
        Return True and mark ``key`` when it was not seen inside the window.

        Marking happens in the same call, so two concurrent callers with the
        same key get one True between them.
        """
        pass

    async def health_check(self) -> bool:
        return True


class InMemoryDedupeCache(BaseDedupeCache):
    """Process-local dedupe cache."""

    def __init__(
        self,
        window: float = 5.0,
        ttl: float = 60.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self.ttl = max(ttl, window)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self, now: float) -> None:
        # Entries are kept in insertion order of their last mark
        while self._entries:
            key, marked_at = next(iter(self._entries.items()))
            if now - marked_at < self.ttl and len(self._entries) <= self.max_entries:
                break
            self._entries.popitem(last=False)

    async def should_send(self, key: str) -> bool:
        now = self._clock()
        self._evict(now)

        marked_at = self._entries.get(key)
        if marked_at is not None and now - marked_at < self.window:
            logger.debug(f"Duplicate notification suppressed: {key}")
            return False

        self._entries.pop(key, None)
        self._entries[key] = now
        self._evict(now)
        return True

    def clear(self) -> None:
        self._entries.clear()


class RedisDedupeCache(BaseDedupeCache):
    """Dedupe cache shared through Redis."""

    def __init__(self, url: str, window: float = 5.0, client: Optional[redis.Redis] = None):
        self.window = window
        self._client = client or redis.Redis.from_url(url, socket_timeout=2)
        logger.info("RedisDedupeCache initialized")

    async def should_send(self, key: str) -> bool:
        try:
            marked = await self._client.set(key, "1", nx=True, px=int(self.window * 1000))
        except redis.RedisError as e:
            # Fail open
            logger.error(f"Dedupe cache unavailable, sending anyway: {e}")
            return True
        if not marked:
            logger.debug(f"Duplicate notification suppressed: {key}")
        return bool(marked)

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
