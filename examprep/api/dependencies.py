"""
FastAPI dependency injection module.

Provides the per-application cache service, settings and the admin guard.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from examprep.cache import CacheService
from examprep.config import Settings


def get_cache_service(request: Request) -> CacheService:
    """Get the CacheService created by the application lifespan."""
    return request.app.state.cache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin(
    x_admin_token: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Allow the request only with a matching X-Admin-Token header.

    Admin routes are closed entirely when ADMIN_TOKEN is not configured.
    """
    expected = settings.admin_token
    if not expected or not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
