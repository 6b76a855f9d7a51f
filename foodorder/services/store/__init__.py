"""
Document Store Factory

Returns the in-memory or SQL document store based on ENV_MODE.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from foodorder.core.config import get_settings
from foodorder.services.store.base import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    BaseDocumentStore,
    DocumentRef,
    DocumentSnapshot,
    Query,
    QuerySnapshot,
    StoreError,
    Subscription,
    Transaction,
    WriteBatch,
)
from foodorder.services.store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_document_store() -> BaseDocumentStore:
    """Get the configured document store."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Document Store: Using InMemoryDocumentStore (development mode)")
        return InMemoryDocumentStore(latency=settings.mock_store_latency)

    from foodorder.database import create_engine
    from foodorder.services.store.sql import SqlDocumentStore

    logger.info(f"Document Store: Using SqlDocumentStore ({settings.env_mode.value} mode)")
    return SqlDocumentStore(create_engine())


def reset_document_store() -> None:
    """Clear the cached store instance."""
    get_document_store.cache_clear()


__all__ = [
    "get_document_store",
    "reset_document_store",
    "BaseDocumentStore",
    "InMemoryDocumentStore",
    "ArrayRemove",
    "ArrayUnion",
    "DELETE_FIELD",
    "DocumentRef",
    "DocumentSnapshot",
    "Query",
    "QuerySnapshot",
    "SERVER_TIMESTAMP",
    "StoreError",
    "Subscription",
    "Transaction",
    "WriteBatch",
]
