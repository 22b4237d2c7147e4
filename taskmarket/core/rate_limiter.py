"""Fixed-window rate limiting backed by Redis."""

import logging
from datetime import UTC, datetime

from fastapi import HTTPException

from taskmarket.core.config import Constants, settings
from taskmarket.core.redis_client import redis_client


logger = logging.getLogger(__name__)


class RateLimiter:
    """Rate limiter using Redis counters per fixed time window."""

    async def check_rate_limit(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int,
    ) -> None:
        """Check if request is within rate limit.

        Increments the counter for the current window, sets its expiry on the
        first hit and raises once the limit is exceeded. Fails open when Redis
        is unavailable.

        Args:
            scope: Rate limit scope (e.g., 'verify')
            identifier: Unique identifier (e.g., "user_id:task_id")
            limit: Maximum requests allowed per window
            window_seconds: Window length in seconds

        Raises:
            HTTPException: 429 when the limit is exceeded
        """
        if not redis_client.is_available:
            logger.debug("rate_limit_check_skipped", extra={"reason": "redis_unavailable"})
            return

        now = datetime.now(UTC)
        window_start = int(now.timestamp()) // window_seconds
        key = f"ratelimit:{scope}:{identifier}:{window_start}"

        count = await redis_client.increment(key)
        if count is None:
            logger.warning("rate_limit_check_failed", extra={"reason": "redis_increment_failed"})
            return

        if count == 1:
            await redis_client.expire(key, window_seconds)

        if count > limit:
            retry_after = window_seconds - (int(now.timestamp()) % window_seconds)
            logger.warning(
                "rate_limit_exceeded",
                extra={
                    "scope": scope,
                    "identifier": identifier,
                    "count": count,
                    "limit": limit,
                    "retry_after": retry_after,
                },
            )
            raise HTTPException(
                status_code=Constants.HTTP_TOO_MANY_REQUESTS,
                detail="Too many requests",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                },
            )

    async def check_verification_rate_limit(self, *, user_id: str, task_id: str) -> None:
        """Limit verification code submissions per user and task."""
        await self.check_rate_limit(
            scope="verify",
            identifier=f"{user_id}:{task_id}",
            limit=settings.verification_attempts_per_window,
            window_seconds=settings.verification_window_seconds,
        )


# Global rate limiter instance
rate_limiter = RateLimiter()
