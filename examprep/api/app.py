"""
API Application Factory.

Creates and configures the FastAPI application with:
- One Redis connector and cache service per application (lifespan-owned)
- Rate limiting middleware
- Exception handlers
- Health and cache admin routes
"""

import time
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI

from examprep import __version__
from examprep.cache import CacheService
from examprep.config import Settings, get_settings
from examprep.logging import RequestLoggingMiddleware, configure_logging, get_logger
from examprep.security import RateLimiter, RateLimitPolicy

from .errors import register_exception_handlers
from .middleware import DEFAULT_RULES, RateLimitMiddleware
from .routes import admin_router, router

logger = get_logger("api")


def create_app(
    settings: Optional[Settings] = None,
    cache: Optional[CacheService] = None,
    rate_limit_rules: Sequence[tuple[str, RateLimitPolicy]] = DEFAULT_RULES,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (environment-derived if None)
        cache: Prebuilt cache service; built from settings if None
        rate_limit_rules: Ordered (path prefix, policy) pairs

    The lifespan initializes the cache on startup and closes it on shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = cache or CacheService.from_settings(settings)
        await service.init()

        app.state.cache = service
        app.state.rate_limiter = RateLimiter(service, enabled=settings.rate_limit_enabled)
        app.state.started_at = time.time()
        logger.info("app_started", cache_available=service.is_available())

        try:
            yield
        finally:
            await service.close()
            logger.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RateLimitMiddleware, rules=rate_limit_rules)
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(router)
    app.include_router(admin_router)

    return app
