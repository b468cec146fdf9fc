"""
Backing store factory.
Configures which document store implementation to use.
"""

from typing import Optional

from liveroom.core.config import get_settings
from liveroom.core.logging import get_logger
from liveroom.infrastructure.memory_store import MemoryDocumentStore
from liveroom.infrastructure.redis_client import RedisClient, get_redis
from liveroom.infrastructure.redis_store import RedisDocumentStore
from liveroom.services.interfaces.document_store import DocumentStore

logger = get_logger(__name__)


def create_store() -> DocumentStore:
    """
    Build the configured store.

    - memory: single process, tests and local runs
    - redis: shared across API workers (default)
    """
    settings = get_settings()

    if settings.STORE_BACKEND == "memory":
        return MemoryDocumentStore()
    return RedisDocumentStore(
        get_redis(),
        key_prefix=settings.REDIS_KEY_PREFIX,
        max_retries=settings.TRANSACTION_MAX_RETRIES,
        backoff_base_s=settings.TRANSACTION_BACKOFF_BASE_S,
        backoff_max_s=settings.TRANSACTION_BACKOFF_MAX_S,
    )


# Singleton instance
_store: Optional[DocumentStore] = None


def get_store() -> DocumentStore:
    """Get document store singleton. Also used as a FastAPI dependency."""
    global _store
    if _store is None:
        _store = create_store()
        logger.info("store_created", backend=get_settings().STORE_BACKEND)
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None
    await RedisClient.close()
