"""
HTTP integration for the exam-prep cache layer.
"""

from .app import create_app
from .middleware import DEFAULT_RULES, RateLimitMiddleware

__all__ = ["create_app", "RateLimitMiddleware", "DEFAULT_RULES"]
