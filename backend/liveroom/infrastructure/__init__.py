"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, RedisClient
from .redis_store import RedisDocumentStore
from .memory_store import MemoryDocumentStore

__all__ = ['get_redis', 'RedisClient', 'RedisDocumentStore', 'MemoryDocumentStore']
