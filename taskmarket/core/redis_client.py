"""Optional async Redis client used for rate limiting counters."""

import logging
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from taskmarket.core.config import Constants, settings


logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper with connection pooling.

    Every operation degrades to a no-op result when Redis is not configured
    or unreachable; callers decide whether to fail open.
    """

    def __init__(self, redis_url: str | None = None) -> None:
        url = redis_url if redis_url is not None else settings.redis_url
        self._client: Redis | None = None
        self._pool: ConnectionPool | None = None
        self._enabled = bool(url)

        self._last_successful_operation: datetime | None = None
        self._failure_count = 0
        self._total_operations = 0

        if self._enabled and url:
            try:
                self._pool = ConnectionPool.from_url(
                    url,
                    decode_responses=True,
                    max_connections=Constants.REDIS_MAX_CONNECTIONS,
                )
                self._client = Redis(connection_pool=self._pool)
                logger.info("Redis client initialized")
            except (RedisError, ValueError) as e:
                logger.warning("Failed to initialize Redis client: %s. Running without rate limiting.", e)
                self._enabled = False
                self._client = None
                self._pool = None
        else:
            logger.info("Redis URL not configured. Running without rate limiting.")

    @property
    def is_available(self) -> bool:
        """Check if Redis is available."""
        return self._enabled and self._client is not None

    def get_health_status(self) -> dict[str, Any]:
        """Get Redis health status."""
        return {
            "enabled": self._enabled,
            "connected": self.is_available,
            "last_successful_operation": self._last_successful_operation.isoformat()
            if self._last_successful_operation
            else None,
            "failure_count": self._failure_count,
            "total_operations": self._total_operations,
        }

    def _record_success(self) -> None:
        self._last_successful_operation = datetime.now(UTC)
        self._total_operations += 1

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._total_operations += 1

    async def increment(self, key: str) -> int | None:
        """Atomically increment a counter.

        Returns:
            New counter value, or None if Redis is unavailable or the call failed
        """
        if not self.is_available or not self._client:
            return None

        try:
            value = await self._client.incr(key)
            self._record_success()
            return int(value)
        except RedisError as e:
            self._record_failure()
            logger.warning("Redis INCR error for key %s: %s", key, e)
            return None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on a key."""
        if not self.is_available or not self._client:
            return False

        try:
            result = await self._client.expire(key, ttl_seconds)
            self._record_success()
            return bool(result)
        except RedisError as e:
            self._record_failure()
            logger.warning("Redis EXPIRE error for key %s: %s", key, e)
            return False

    async def ping(self) -> bool:
        """Ping Redis to check connection."""
        if not self.is_available or not self._client:
            return False

        try:
            result = await self._client.ping()  # type: ignore[misc]
            return bool(result)
        except RedisError as e:
            logger.warning("Redis PING failed: %s", e)
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            logger.info("Redis client closed")


# Global Redis client instance
redis_client = RedisClient()
