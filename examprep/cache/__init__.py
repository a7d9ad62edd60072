"""
Redis Caching Layer.

Provides the cache that sits in front of the document database:
- Cache-aside lookups per domain family (limits, profiles, questions, ...)
- Fixed-window rate limiting
- Graceful degradation when Redis is unavailable

Usage:
    from examprep.cache import CacheService, RedisConnector, CacheKeys

    cache = CacheService(RedisConnector(redis_url))
    await cache.init()

    await cache.set_chapters("jee", "physics", chapters)
    chapters = await cache.get_chapters("jee", "physics")
"""

from examprep.cache.cache_keys import CacheKeys
from examprep.cache.connection import LinearBackoff, RedisConnector
from examprep.cache.guard import OperationGuard
from examprep.cache.models import ConnectionStatus, RateLimitStatus
from examprep.cache.service import CacheService

__all__ = [
    "CacheService",
    "RedisConnector",
    "LinearBackoff",
    "OperationGuard",
    "CacheKeys",
    "ConnectionStatus",
    "RateLimitStatus",
]
