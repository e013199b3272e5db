"""
Shared Rate Limiter Instance

This module provides a singleton rate limiter instance that can be imported
throughout the application without causing circular import issues.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings

# memory:// keeps counters per process; use redis://host:6379 when running several workers
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000/hour"],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED
)
