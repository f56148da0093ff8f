"""
Redis client for the bulk progress mirror.

The tracker writes every operation state change here so progress can still be
read for a while after a restart. The mirror is strictly best-effort: every
method degrades to a no-op when Redis is not configured or unreachable, and a
failed connection is not retried until a cooldown has passed so a dead Redis
never slows down operation bookkeeping.
"""
import redis.asyncio as redis
import json
import logging
import time
from typing import Any, Optional
from config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

RECONNECT_COOLDOWN_SECONDS = 30.0

_redis_client: Optional[redis.Redis] = None
_disabled_logged = False
_retry_after = 0.0


async def get_redis() -> Optional[redis.Redis]:
    """Shared client, or None when Redis is disabled or recently failed."""
    global _redis_client, _disabled_logged, _retry_after

    if not settings.redis_url:
        if not _disabled_logged:
            logger.warning("Redis URL not configured - progress mirror disabled")
            _disabled_logged = True
        return None

    if _redis_client is not None:
        return _redis_client

    if time.monotonic() < _retry_after:
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_timeout=1,
            socket_connect_timeout=1,
        )
        await client.ping()
        _redis_client = client
        logger.info("Progress mirror connected to Redis")
    except Exception as e:
        _retry_after = time.monotonic() + RECONNECT_COOLDOWN_SECONDS
        logger.error(f"Redis unavailable, retrying in {RECONNECT_COOLDOWN_SECONDS:.0f}s: {e}")
        return None

    return _redis_client


def _drop_client():
    """Forget a client whose connection broke; the next call reconnects after the cooldown."""
    global _redis_client, _retry_after
    _redis_client = None
    _retry_after = time.monotonic() + RECONNECT_COOLDOWN_SECONDS


async def close_redis():
    """Close the shared client on shutdown."""
    global _redis_client

    if _redis_client:
        try:
            await _redis_client.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis: {e}")
        finally:
            _redis_client = None


class CacheClient:
    """JSON values under a common key prefix, with TTLs."""

    def __init__(self, prefix: str = "bulk-ops:"):
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Decoded value, or None if missing, corrupt or Redis is unavailable."""
        client = await get_redis()
        if not client:
            return None

        try:
            raw = await client.get(self._key(key))
        except redis.ConnectionError as e:
            logger.error(f"Cache get failed for {key}: {e}")
            _drop_client()
            return None
        except Exception as e:
            logger.error(f"Cache get error for {key}: {e}")
            return None

        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Discarding corrupt cache entry {key}: {e}")
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Store a JSON-serialisable value for ``ttl`` seconds."""
        client = await get_redis()
        if not client:
            return False

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize value for {key}: {e}")
            return False

        try:
            await client.setex(self._key(key), ttl, payload)
            return True
        except redis.ConnectionError as e:
            logger.error(f"Cache set failed for {key}: {e}")
            _drop_client()
            return False
        except Exception as e:
            logger.error(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        client = await get_redis()
        if not client:
            return False

        try:
            await client.delete(self._key(key))
            return True
        except Exception as e:
            logger.error(f"Cache delete error for {key}: {e}")
            return False


# Global cache instance
cache = CacheClient()
