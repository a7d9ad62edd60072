"""
Cache key management.

Centralized cache key definitions to:
- Prevent key collisions between domain families
- Keep TTL policy next to the key it applies to
- Document cache structure
"""

from typing import Any, Optional


class CacheKeys:
    """
    Centralized cache key definitions.

    Naming convention: {family}:{id}[:{id}...]

    Examples:
        - limits:64f1c2 -> User's daily practice limits
        - questions:list:jee:physics:kinematics:*:2 -> Page 2 of a question list
        - question:full:650a1b -> A single question with solution
        - chapters:neet:biology -> Chapter list for a subject
    """

    # Prefixes for different families
    PREFIX_LIMITS = "limits"
    PREFIX_PROFILE = "profile"
    PREFIX_SUBSCRIPTION = "subscription"
    PREFIX_QUESTION_LIST = "questions:list"
    PREFIX_FULL_QUESTION = "question:full"
    PREFIX_ANALYTICS = "analytics"
    PREFIX_CHAPTERS = "chapters"
    PREFIX_TOPICS = "topics"
    PREFIX_SUBJECTS = "subjects"
    PREFIX_TASKS = "tasks"
    PREFIX_RATE_LIMIT = "ratelimit"

    # Placeholder for an unset question-list filter; never a subject, chapter or topic name
    ANY = "*"

    # TTLs (in seconds)
    TTL_LIMITS = 60 * 60            # 1 hour
    TTL_PROFILE = 60 * 30           # 30 minutes
    TTL_SUBSCRIPTION = 60 * 60      # 1 hour
    TTL_QUESTION_LIST = 60 * 60 * 2  # 2 hours
    TTL_FULL_QUESTION = 60 * 60 * 2  # 2 hours
    TTL_ANALYTICS = 60 * 5          # 5 minutes
    TTL_CHAPTERS = 60 * 60 * 2      # 2 hours
    TTL_TOPICS = 60 * 60 * 2        # 2 hours
    TTL_SUBJECTS = 60 * 60 * 24     # 24 hours
    TTL_TASKS = 60 * 5              # 5 minutes

    @staticmethod
    def _part(value: Any) -> str:
        if value is None or value == "":
            return CacheKeys.ANY
        return str(value)

    @staticmethod
    def limits(user_id: str) -> str:
        """Cache key for a user's practice limits."""
        return f"limits:{user_id}"

    @staticmethod
    def profile(user_id: str) -> str:
        """Cache key for a user's profile."""
        return f"profile:{user_id}"

    @staticmethod
    def subscription(user_id: str) -> str:
        """Cache key for a user's active subscription."""
        return f"subscription:{user_id}"

    @staticmethod
    def question_list(
        exam_type: str,
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        topic: Optional[str] = None,
        page: int = 1,
    ) -> str:
        """Cache key for one page of a filtered question list."""
        part = CacheKeys._part
        return (
            f"questions:list:{part(exam_type)}:{part(subject)}:"
            f"{part(chapter)}:{part(topic)}:{page}"
        )

    @staticmethod
    def full_question(question_id: str) -> str:
        """Cache key for a question including its solution."""
        return f"question:full:{question_id}"

    @staticmethod
    def analytics(user_id: str) -> str:
        """Cache key for a user's analytics snapshot."""
        return f"analytics:{user_id}"

    @staticmethod
    def chapters(exam_type: str, subject: str) -> str:
        return f"chapters:{exam_type}:{subject}"

    @staticmethod
    def topics(exam_type: str, subject: str, chapter: str) -> str:
        return f"topics:{exam_type}:{subject}:{chapter}"

    @staticmethod
    def subjects(exam_type: str) -> str:
        return f"subjects:{exam_type}"

    @staticmethod
    def tasks(user_id: str) -> str:
        """Cache key for a user's task board."""
        return f"tasks:{user_id}"

    @staticmethod
    def rate_limit(policy: str, identity: str) -> str:
        """Counter key for a rate-limit policy and client identity."""
        return f"ratelimit:{policy}:{identity}"

    # Keys removed together on account-level events
    @staticmethod
    def user_keys(user_id: str) -> list[str]:
        """All per-user keys dropped by a bulk user invalidation."""
        return [
            CacheKeys.limits(user_id),
            CacheKeys.profile(user_id),
            CacheKeys.subscription(user_id),
            CacheKeys.analytics(user_id),
        ]
