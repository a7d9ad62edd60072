"""
Exam-prep cache layer.

This package provides the Redis cache that sits in front of the exam platform's
document database: domain caching, rate limiting, bulk invalidation and the
FastAPI integration that wires them into the web service.

Usage:
    # Config
    from examprep.config import get_settings, Settings

    # Logging
    from examprep.logging import get_logger, configure_logging

    # Cache
    from examprep.cache import CacheService, RedisConnector, CacheKeys
"""

__version__ = "2.0.0"

# Users should import directly from submodules:
#   from examprep.cache import CacheService
#   from examprep.config import get_settings
#   from examprep.logging import get_logger
