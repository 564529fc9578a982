"""Redis connection and the directory lookup cache.

Only read-mostly directory records (doctors) are cached. Appointment state
is never cached; stats and slot availability are recomputed on every read.
"""

import json
from typing import Any, cast

import redis
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)

# Process-wide client, created on first use
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Return the shared Redis client, creating it from settings if needed."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


def close_redis_connection() -> None:
    """Close the shared client, if one was created."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


async def check_redis_connection() -> bool:
    """Ping Redis; used by the detailed health check."""
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError:
        return False


class CacheManager:
    """
    JSON values in Redis.

    Every operation fails soft: a Redis error is logged and reads as a miss,
    so an outage slows lookups down but never fails a request.
    """

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    @staticmethod
    def key(*parts: object) -> str:
        """Build a colon-separated cache key."""
        return ":".join(str(part) for part in parts)

    def get_json(self, key: str) -> Any | None:
        """Deserialized value stored at ``key``, or None on a miss or error."""
        try:
            value = cast(str | None, self.redis.get(key))
        except Exception as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

        if not value:
            return None

        try:
            return json.loads(value)
        except ValueError:
            logger.warning("cache_value_corrupt", key=key)
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store ``value`` as JSON.

        Values that JSON cannot represent natively (UUID, Decimal, dates) are
        stored as strings; readers restore their types.

        Returns:
            True if stored, False on error
        """
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(key, ttl, payload)
            else:
                self.redis.set(key, payload)
        except Exception as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False
        return True

    def delete(self, key: str) -> bool:
        """Drop ``key``; True unless Redis failed."""
        try:
            self.redis.delete(key)
        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
            return False
        return True
