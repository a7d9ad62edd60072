"""
Security module for the exam-prep API.

Provides:
- Rate-limit policies and the Redis-backed limiter
"""

from .rate_limiter import (
    API_POLICY,
    AUTH_POLICY,
    OTP_POLICY,
    PAYMENT_POLICY,
    POLICIES,
    QUESTION_POLICY,
    RateLimitDecision,
    RateLimiter,
    RateLimitPolicy,
)

__all__ = [
    "RateLimiter",
    "RateLimitPolicy",
    "RateLimitDecision",
    "POLICIES",
    "API_POLICY",
    "AUTH_POLICY",
    "OTP_POLICY",
    "PAYMENT_POLICY",
    "QUESTION_POLICY",
]
