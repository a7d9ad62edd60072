"""
Redis-backed rate limiting policies.

Provides:
- Named policies (api, auth, otp, payment, question)
- Fixed-window counting through CacheService.check_rate_limit
- Rate-limit response headers
- Refunds for policies that skip failed or successful requests

When Redis is unavailable every check is allowed (fails open): availability of
the exam platform takes priority over strict quota enforcement.
"""

import time
from dataclasses import dataclass
from typing import Optional

from examprep.cache import CacheKeys, CacheService, RateLimitStatus
from examprep.logging import get_logger

logger = get_logger("security.rate_limiter")


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named request quota."""
    name: str
    limit: int
    window: int  # seconds
    message: str = "Too many requests, please try again later"
    per_user: bool = False  # key by authenticated user instead of client IP
    skip_failed_requests: bool = False
    skip_successful_requests: bool = False

    def should_refund(self, status_code: int) -> bool:
        """Whether a finished response should be given back to the quota."""
        if self.skip_successful_requests and status_code < 400:
            return True
        return self.skip_failed_requests and status_code >= 400


# Policy presets
API_POLICY = RateLimitPolicy(
    name="api",
    limit=100,
    window=15 * 60,
    message="Too many requests from this IP, please try again later",
    skip_failed_requests=True,
)
AUTH_POLICY = RateLimitPolicy(
    name="auth",
    limit=10,
    window=15 * 60,
    message="Too many login attempts, please try again after 15 minutes",
    skip_failed_requests=True,
)
OTP_POLICY = RateLimitPolicy(
    name="otp",
    limit=3,
    window=10 * 60,
    message="Too many OTP requests. Please try again after 10 minutes",
)
PAYMENT_POLICY = RateLimitPolicy(
    name="payment",
    limit=5,
    window=60 * 60,
    message="Too many payment requests. Please try again later",
    skip_failed_requests=True,
)
QUESTION_POLICY = RateLimitPolicy(
    name="question",
    limit=30,
    window=60,
    message="You are accessing questions too quickly. Please slow down",
    per_user=True,
    skip_failed_requests=True,
)

POLICIES = {
    policy.name: policy
    for policy in (API_POLICY, AUTH_POLICY, OTP_POLICY, PAYMENT_POLICY, QUESTION_POLICY)
}


@dataclass
class RateLimitDecision:
    """Result of checking a policy for one client."""
    policy: RateLimitPolicy
    key: str
    status: RateLimitStatus

    @property
    def allowed(self) -> bool:
        return self.status.allowed

    @property
    def limit(self) -> int:
        return self.status.limit or self.policy.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - (self.status.current or 0))

    @property
    def reset_in(self) -> int:
        """Seconds until the window resets."""
        if self.status.reset_in is None or self.status.reset_in < 0:
            return self.policy.window
        return self.status.reset_in

    @property
    def retry_after(self) -> Optional[int]:
        return None if self.allowed else self.reset_in

    def to_headers(self) -> dict:
        """
        Convert rate limit metadata into HTTP response headers.

        Returns:
            Dictionary of rate limit header names to values.
        """
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(time.time()) + self.reset_in),
        }
        if self.retry_after:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """
    Applies rate-limit policies on top of the cache's fixed-window counter.

    Usage:
        limiter = RateLimiter(cache)

        decision = await limiter.check(AUTH_POLICY, client_ip)
        if not decision.allowed:
            raise TooManyRequests(retry_after=decision.retry_after)
    """

    def __init__(self, cache: CacheService, enabled: bool = True):
        self._cache = cache
        self.enabled = enabled

    async def check(self, policy: RateLimitPolicy, identity: str) -> RateLimitDecision:
        """
        Count one request for ``identity`` against ``policy``.

        Args:
            policy: The quota to apply
            identity: Client identifier (user id or IP address)

        Returns:
            RateLimitDecision with allowed status and header metadata
        """
        key = CacheKeys.rate_limit(policy.name, identity)
        if not self.enabled:
            return RateLimitDecision(policy, key, RateLimitStatus(allowed=True))

        status = await self._cache.check_rate_limit(key, policy.limit, policy.window)
        decision = RateLimitDecision(policy, key, status)

        if status.failed_open:
            logger.debug("rate_limit_fail_open", policy=policy.name)
        elif not status.allowed:
            logger.warning(
                "rate_limit_exceeded",
                policy=policy.name,
                identity=identity[:20],  # Truncate for privacy
                current=status.current,
                retry_after=decision.retry_after,
            )
        return decision

    async def refund(self, decision: RateLimitDecision) -> None:
        """Give back the request counted by ``decision``."""
        if decision.status.failed_open:
            return
        if await self._cache.decrement(decision.key) is not None:
            logger.debug("rate_limit_refunded", policy=decision.policy.name)
