"""
Redis caching layer.

Provides:
- Redis client with connection pooling
- JSON cache helpers used by the bulk progress mirror
"""

from .redis_client import get_redis, close_redis, cache, CacheClient

__all__ = [
    "get_redis",
    "close_redis",
    "cache",
    "CacheClient",
]
