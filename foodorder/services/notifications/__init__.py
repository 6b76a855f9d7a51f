"""
Notification Service Factory

Returns the Mock or Expo push transport based on ENV_MODE, the configured
dedupe cache, and the dispatcher wiring them to the document store.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from foodorder.core.config import DedupeBackend, get_settings
from foodorder.services.notifications.base import BasePushTransport, PushResult
from foodorder.services.notifications.dedupe import (
    BaseDedupeCache,
    InMemoryDedupeCache,
    RedisDedupeCache,
)
from foodorder.services.notifications.dispatcher import NotificationDispatcher, status_message
from foodorder.services.notifications.expo import ExpoPushTransport
from foodorder.services.notifications.mock import MockPushTransport
from foodorder.services.store import get_document_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_push_transport() -> BasePushTransport:
    """Get the configured push transport."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Push Transport: Using MockPushTransport (development mode)")
        return MockPushTransport(failure_rate=0.05, min_latency=0.05, max_latency=0.2)
    else:
        logger.info(f"Push Transport: Using ExpoPushTransport ({settings.env_mode.value} mode)")
        return ExpoPushTransport()


@lru_cache()
def get_dedupe_cache() -> BaseDedupeCache:
    """Get the configured notification dedupe cache."""
    settings = get_settings()

    if settings.dedupe_backend == DedupeBackend.REDIS:
        logger.info("Dedupe Cache: Using RedisDedupeCache")
        return RedisDedupeCache(settings.redis_url, window=settings.notification_dedupe_window_seconds)

    logger.info("Dedupe Cache: Using InMemoryDedupeCache")
    return InMemoryDedupeCache(
        window=settings.notification_dedupe_window_seconds,
        ttl=settings.notification_dedupe_ttl_seconds,
        max_entries=settings.notification_dedupe_max_entries,
    )


@lru_cache()
def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the dispatcher bound to the configured store, transport and cache."""
    return NotificationDispatcher(
        store=get_document_store(),
        transport=get_push_transport(),
        dedupe=get_dedupe_cache(),
    )


def reset_notification_services() -> None:
    """Clear the cached service instances."""
    get_push_transport.cache_clear()
    get_dedupe_cache.cache_clear()
    get_notification_dispatcher.cache_clear()


__all__ = [
    "get_push_transport",
    "get_dedupe_cache",
    "get_notification_dispatcher",
    "reset_notification_services",
    "BasePushTransport",
    "BaseDedupeCache",
    "InMemoryDedupeCache",
    "RedisDedupeCache",
    "MockPushTransport",
    "ExpoPushTransport",
    "NotificationDispatcher",
    "PushResult",
    "status_message",
]
