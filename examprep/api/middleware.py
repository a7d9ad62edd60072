"""
Rate Limiting Middleware.

Applies named rate-limit policies to request paths using the Redis-backed
fixed-window limiter.
"""

from typing import Callable, Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from examprep.security import (
    API_POLICY,
    AUTH_POLICY,
    OTP_POLICY,
    PAYMENT_POLICY,
    QUESTION_POLICY,
    RateLimiter,
    RateLimitPolicy,
)

# Checked in order; the first matching prefix wins
DEFAULT_RULES: tuple[tuple[str, RateLimitPolicy], ...] = (
    ("/api/auth/send-otp", OTP_POLICY),
    ("/api/auth/login", AUTH_POLICY),
    ("/api/payment", PAYMENT_POLICY),
    ("/api/questions", QUESTION_POLICY),
    ("/api", API_POLICY),
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware for API rate limiting.

    The limiter is read from ``app.state.rate_limiter`` at request time so the
    application lifespan owns its construction.

    Rate limit headers:
    - X-RateLimit-Limit: Maximum requests allowed
    - X-RateLimit-Remaining: Requests remaining
    - X-RateLimit-Reset: Unix timestamp when the window resets
    - Retry-After: Seconds until limit resets (when exceeded)
    """

    EXEMPT_PATHS = {"/", "/api/health", "/docs", "/redoc", "/openapi.json"}

    def __init__(self, app, rules: Sequence[tuple[str, RateLimitPolicy]] = DEFAULT_RULES):
        super().__init__(app)
        self.rules = list(rules)

    def _policy_for_path(self, path: str) -> Optional[RateLimitPolicy]:
        for prefix, policy in self.rules:
            if path.startswith(prefix):
                return policy
        return None

    def _get_identity(self, request: Request, policy: RateLimitPolicy) -> str:
        """Get unique identifier for the client."""
        if policy.per_user:
            # Set by the authentication layer in front of this middleware
            user_id = getattr(request.state, "user_id", None)
            return f"user:{user_id or 'anonymous'}"

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
        path = request.url.path
        if limiter is None or path in self.EXEMPT_PATHS:
            return await call_next(request)

        policy = self._policy_for_path(path)
        if policy is None:
            return await call_next(request)

        decision = await limiter.check(policy, self._get_identity(request, policy))
        headers = decision.to_headers()

        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": policy.message,
                    "retryAfter": decision.retry_after,
                },
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value

        if policy.should_refund(response.status_code):
            await limiter.refund(decision)

        return response
