"""
Health and cache administration routes.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from examprep.cache import CacheService

from .dependencies import get_app_settings, get_cache_service, require_admin

router = APIRouter(prefix="/api")
admin_router = APIRouter(prefix="/api/admin/cache", dependencies=[Depends(require_admin)])


@router.get("/health", tags=["health"])
async def health_check(request: Request, cache: CacheService = Depends(get_cache_service)):
    """Report service health, including Redis status and cache statistics."""
    settings = get_app_settings(request)
    started_at = getattr(request.app.state, "started_at", None)
    available = cache.is_available()

    health = {
        "success": True,
        "message": f"{settings.app_name} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.env,
        "uptime_seconds": round(time.time() - started_at, 2) if started_at else 0,
        "checks": {
            "redis": "connected" if available else "disconnected",
            "rate_limiting": "enabled" if settings.rate_limit_enabled else "disabled",
        },
    }
    if available:
        health["redis"] = await cache.get_cache_stats()
    return health


@admin_router.get("/stats")
async def cache_stats(cache: CacheService = Depends(get_cache_service)):
    return {"success": True, "stats": await cache.get_cache_stats()}


@admin_router.delete("")
async def clear_cache(cache: CacheService = Depends(get_cache_service)):
    """Flush every cached key."""
    if not await cache.clear_all_cache():
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Cache unavailable"},
        )
    return {"success": True, "message": "Cache cleared"}


@admin_router.delete("/users/{user_id}")
async def clear_user_cache(user_id: str, cache: CacheService = Depends(get_cache_service)):
    """Drop the cached limits, profile, subscription and analytics of a user."""
    if not await cache.invalidate_user_cache(user_id):
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Cache unavailable"},
        )
    return {"success": True, "message": f"Cache cleared for user {user_id}"}
