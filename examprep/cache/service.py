"""
Domain cache facade.

Provides typed cache-aside operations for the exam platform's read paths:
- Per-family get/set/invalidate with namespaced keys and default TTLs
- Fixed-window rate limiting that fails open
- Bulk per-user invalidation and admin operations

No method raises. A ``None``/``False`` result means "go to the database",
whether the key was missing, Redis was down, or the stored value was bad.
"""

import json
from typing import Any, Awaitable, Callable, Optional

from examprep.cache.cache_keys import CacheKeys
from examprep.cache.connection import ClientFactory, RedisConnector
from examprep.cache.guard import OperationGuard
from examprep.cache.models import FAIL_OPEN, RateLimitStatus
from examprep.config import Settings
from examprep.logging import get_logger

logger = get_logger("cache")


class CacheService:
    """
    Cache-aside facade over one RedisConnector.

    Usage:
        cache = CacheService(RedisConnector.from_settings(settings))
        await cache.init()

        limits = await cache.get_limits(user_id)
        if limits is None:
            limits = await load_limits_from_db(user_id)
            await cache.set_limits(user_id, limits)
    """

    def __init__(
        self,
        connector: RedisConnector,
        *,
        op_timeout: float = 0.5,
        bulk_timeout: float = 1.0,
    ):
        self._connector = connector
        self._guard = OperationGuard(connector, timeout=op_timeout)
        self._bulk_timeout = bulk_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
    ) -> "CacheService":
        """Build the service and its connector from application settings."""
        connector = RedisConnector.from_settings(settings, client_factory=client_factory)
        return cls(
            connector,
            op_timeout=settings.cache_op_timeout,
            bulk_timeout=settings.cache_bulk_timeout,
        )

    @property
    def connector(self) -> RedisConnector:
        return self._connector

    @property
    def guard(self) -> OperationGuard:
        return self._guard

    async def init(self) -> bool:
        """
        Acquire (or reuse) the Redis connection.

        Safe to call any number of times; a failed earlier attempt is retried.

        Returns:
            True if Redis is ready, False if the service runs uncached
        """
        try:
            await self._connector.connect()
        except Exception as e:
            logger.warning("cache_init_error", error=str(e))
        available = self.is_available()
        logger.info("cache_initialized", available=available)
        return available

    def is_available(self) -> bool:
        """Check if Redis is currently usable. Never blocks."""
        return self._connector.is_available()

    async def close(self) -> None:
        await self._guard.cancel_pending()
        await self._connector.close()

    # =========================================================================
    # JSON Operations
    # =========================================================================

    async def get_json(self, key: str) -> Any | None:
        """
        Get JSON data from cache.

        Args:
            key: Cache key

        Returns:
            Parsed value, or None if not found, unavailable, or undecodable
        """
        raw = await self._guard.run("get", lambda r: r.get(key), key=key)
        if raw is None:
            self._guard.stats["misses"] += 1
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            self._guard.stats["decode_errors"] += 1
            logger.warning("cache_decode_error", key=key, error=str(e))
            return None

        self._guard.stats["hits"] += 1
        return value

    async def set_json(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store JSON data in cache.

        Args:
            key: Cache key
            value: Data to cache (must be JSON-serializable)
            ttl: Time-to-live in seconds

        Returns:
            True if Redis accepted the write within budget, False otherwise
        """
        if ttl <= 0:
            logger.debug("cache_set_skipped", key=key, reason="non-positive ttl")
            return False

        try:
            payload = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            logger.debug("cache_encode_error", key=key, error=str(e))
            return False

        stored = await self._guard.run(
            "setex", lambda r: r.setex(key, ttl, payload), default=False, key=key
        )
        return bool(stored)

    async def delete(self, key: str) -> bool:
        """Delete a key. Deleting a missing key counts as success."""
        removed = await self._guard.run("delete", lambda r: r.delete(key), key=key)
        return removed is not None

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int,
    ) -> Any | None:
        """
        Get from cache or load from the source of truth and cache the result.

        Loader errors propagate; only cache failures are absorbed.
        """
        cached = await self.get_json(key)
        if cached is not None:
            return cached

        value = await loader()
        if value is not None:
            await self.set_json(key, value, ttl)
        return value

    # =========================================================================
    # Limits
    # =========================================================================

    async def get_limits(self, user_id: str) -> Any | None:
        return await self.get_json(CacheKeys.limits(user_id))

    async def set_limits(
        self, user_id: str, limits: Any, ttl: int = CacheKeys.TTL_LIMITS
    ) -> bool:
        return await self.set_json(CacheKeys.limits(user_id), limits, ttl)

    async def invalidate_limits(self, user_id: str) -> bool:
        return await self.delete(CacheKeys.limits(user_id))

    # =========================================================================
    # User Profile
    # =========================================================================

    async def get_user_profile(self, user_id: str) -> Any | None:
        return await self.get_json(CacheKeys.profile(user_id))

    async def set_user_profile(
        self, user_id: str, profile: Any, ttl: int = CacheKeys.TTL_PROFILE
    ) -> bool:
        return await self.set_json(CacheKeys.profile(user_id), profile, ttl)

    async def invalidate_user_profile(self, user_id: str) -> bool:
        return await self.delete(CacheKeys.profile(user_id))

    # =========================================================================
    # Subscription
    # =========================================================================

    async def get_subscription(self, user_id: str) -> Any | None:
        return await self.get_json(CacheKeys.subscription(user_id))

    async def set_subscription(
        self, user_id: str, subscription: Any, ttl: int = CacheKeys.TTL_SUBSCRIPTION
    ) -> bool:
        return await self.set_json(CacheKeys.subscription(user_id), subscription, ttl)

    async def invalidate_subscription(self, user_id: str) -> bool:
        """Drop the cached subscription, e.g. after a purchase or cancellation."""
        return await self.delete(CacheKeys.subscription(user_id))

    # =========================================================================
    # Questions
    # =========================================================================

    async def get_question_list(
        self,
        exam_type: str,
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        topic: Optional[str] = None,
        page: int = 1,
    ) -> Any | None:
        key = CacheKeys.question_list(exam_type, subject, chapter, topic, page)
        return await self.get_json(key)

    async def set_question_list(
        self,
        exam_type: str,
        subject: Optional[str],
        chapter: Optional[str],
        topic: Optional[str],
        page: int,
        questions: list[Any],
        ttl: int = CacheKeys.TTL_QUESTION_LIST,
    ) -> bool:
        key = CacheKeys.question_list(exam_type, subject, chapter, topic, page)
        return await self.set_json(key, questions, ttl)

    async def invalidate_question_list(
        self,
        exam_type: str,
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        topic: Optional[str] = None,
        page: int = 1,
    ) -> bool:
        key = CacheKeys.question_list(exam_type, subject, chapter, topic, page)
        return await self.delete(key)

    async def get_full_question(self, question_id: str) -> Any | None:
        return await self.get_json(CacheKeys.full_question(question_id))

    async def set_full_question(
        self, question_id: str, question: Any, ttl: int = CacheKeys.TTL_FULL_QUESTION
    ) -> bool:
        return await self.set_json(CacheKeys.full_question(question_id), question, ttl)

    async def invalidate_full_question(self, question_id: str) -> bool:
        return await self.delete(CacheKeys.full_question(question_id))

    # =========================================================================
    # Analytics
    # =========================================================================

    async def get_analytics(self, user_id: str) -> Any | None:
        return await self.get_json(CacheKeys.analytics(user_id))

    async def set_analytics(
        self, user_id: str, analytics: Any, ttl: int = CacheKeys.TTL_ANALYTICS
    ) -> bool:
        return await self.set_json(CacheKeys.analytics(user_id), analytics, ttl)

    async def invalidate_analytics(self, user_id: str) -> bool:
        return await self.delete(CacheKeys.analytics(user_id))

    # =========================================================================
    # Syllabus (subjects, chapters, topics)
    # =========================================================================

    async def get_subjects(self, exam_type: str) -> Any | None:
        return await self.get_json(CacheKeys.subjects(exam_type))

    async def set_subjects(
        self, exam_type: str, subjects: list[str], ttl: int = CacheKeys.TTL_SUBJECTS
    ) -> bool:
        return await self.set_json(CacheKeys.subjects(exam_type), subjects, ttl)

    async def invalidate_subjects(self, exam_type: str) -> bool:
        return await self.delete(CacheKeys.subjects(exam_type))

    async def get_chapters(self, exam_type: str, subject: str) -> Any | None:
        return await self.get_json(CacheKeys.chapters(exam_type, subject))

    async def set_chapters(
        self,
        exam_type: str,
        subject: str,
        chapters: list[Any],
        ttl: int = CacheKeys.TTL_CHAPTERS,
    ) -> bool:
        return await self.set_json(CacheKeys.chapters(exam_type, subject), chapters, ttl)

    async def invalidate_chapters(self, exam_type: str, subject: str) -> bool:
        return await self.delete(CacheKeys.chapters(exam_type, subject))

    async def get_topics(self, exam_type: str, subject: str, chapter: str) -> Any | None:
        return await self.get_json(CacheKeys.topics(exam_type, subject, chapter))

    async def set_topics(
        self,
        exam_type: str,
        subject: str,
        chapter: str,
        topics: list[Any],
        ttl: int = CacheKeys.TTL_TOPICS,
    ) -> bool:
        key = CacheKeys.topics(exam_type, subject, chapter)
        return await self.set_json(key, topics, ttl)

    async def invalidate_topics(self, exam_type: str, subject: str, chapter: str) -> bool:
        return await self.delete(CacheKeys.topics(exam_type, subject, chapter))

    # =========================================================================
    # Tasks
    # =========================================================================

    async def get_tasks(self, user_id: str) -> Any | None:
        return await self.get_json(CacheKeys.tasks(user_id))

    async def set_tasks(self, user_id: str, tasks: Any, ttl: int = CacheKeys.TTL_TASKS) -> bool:
        return await self.set_json(CacheKeys.tasks(user_id), tasks, ttl)

    async def invalidate_tasks(self, user_id: str) -> bool:
        return await self.delete(CacheKeys.tasks(user_id))

    # =========================================================================
    # Rate Limiting
    # =========================================================================

    async def check_rate_limit(self, key: str, limit: int, window: int) -> RateLimitStatus:
        """
        Count a request against a fixed window.

        The first increment of a window sets its expiry. INCR and EXPIRE are
        separate commands, so a window whose first EXPIRE is lost keeps
        counting until the key is removed.

        Args:
            key: Counter key
            limit: Maximum requests per window
            window: Window length in seconds

        Returns:
            RateLimitStatus; ``allowed=True`` without counts when Redis
            could not be consulted
        """

        async def count(client) -> tuple[int, int]:
            current = await client.incr(key)
            if current == 1:
                await client.expire(key, window)
            return current, await client.ttl(key)

        counted = await self._guard.run("rate_limit", count, key=key)
        if counted is None:
            return FAIL_OPEN

        current, ttl = counted
        return RateLimitStatus(
            allowed=current <= limit,
            current=current,
            limit=limit,
            reset_in=ttl,
        )

    async def decrement(self, key: str) -> Optional[int]:
        """
        Give back one request on a live counter.

        A counter whose window already ended is left alone; decrementing it
        would recreate the key at -1 with no expiry.

        Returns:
            The new count, or None when nothing was decremented
        """

        async def give_back(client) -> Optional[int]:
            if await client.ttl(key) > 0:
                return await client.decr(key)
            return None

        return await self._guard.run("decr", give_back, key=key)

    # =========================================================================
    # Bulk Invalidation & Admin
    # =========================================================================

    async def invalidate_user_cache(self, user_id: str) -> bool:
        """Remove the limits, profile, subscription and analytics of a user."""
        keys = CacheKeys.user_keys(user_id)
        removed = await self._guard.run(
            "delete_many",
            lambda r: r.delete(*keys),
            timeout=self._bulk_timeout,
            key=CacheKeys.limits(user_id),
        )
        if removed is None:
            return False
        logger.info("user_cache_invalidated", user_id=user_id, removed=removed)
        return True

    async def get_cache_stats(self) -> dict[str, Any]:
        """
        Get connection status, key count and server statistics.

        Returns a degraded status object instead of raising when Redis is
        unavailable.
        """
        client_stats = dict(self._guard.stats)
        if not self.is_available():
            return {
                "connected": False,
                "status": self._connector.status.value,
                "client": client_stats,
            }

        dbsize = await self._guard.run(
            "dbsize", lambda r: r.dbsize(), timeout=self._bulk_timeout
        )
        if dbsize is None:
            return {
                "connected": self.is_available(),
                "status": "error",
                "client": dict(self._guard.stats),
            }

        info = await self._guard.run(
            "info", lambda r: r.info("stats"), timeout=self._bulk_timeout, default={}
        )
        return {
            "connected": True,
            "status": self._connector.status.value,
            "dbsize": dbsize,
            "info": info,
            "client": dict(self._guard.stats),
        }

    async def clear_all_cache(self) -> bool:
        """
        Clear all keys in the current database.

        USE WITH CAUTION - this removes every key family at once.
        """
        flushed = await self._guard.run(
            "flushdb", lambda r: r.flushdb(), timeout=self._bulk_timeout, default=False
        )
        if flushed:
            logger.warning("cache_cleared")
        return bool(flushed)


__all__ = ["CacheService"]
