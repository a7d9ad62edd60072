"""Shared test doubles and constants."""

REDIS_URL = "redis://cache.test:6379/0"
