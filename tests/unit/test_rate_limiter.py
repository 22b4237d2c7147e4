"""Tests for rate limiting functionality."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException

from taskmarket.core.config import settings
from taskmarket.core.rate_limiter import RateLimiter


@pytest.fixture
def rate_limiter():
    """Create a RateLimiter instance."""
    return RateLimiter()


@pytest.mark.unit
async def test_check_rate_limit_within_limit(rate_limiter):
    """Test rate limit check passes when within limit."""
    with patch("taskmarket.core.rate_limiter.redis_client") as mock_redis:
        mock_redis.is_available = True
        mock_redis.increment = AsyncMock(return_value=5)
        mock_redis.expire = AsyncMock(return_value=True)

        await rate_limiter.check_rate_limit(scope="verify", identifier="2:1", limit=10, window_seconds=60)

        mock_redis.increment.assert_called_once()
        mock_redis.expire.assert_not_called()


@pytest.mark.unit
async def test_first_request_sets_expiry(rate_limiter):
    """Test that first request sets TTL on key."""
    with patch("taskmarket.core.rate_limiter.redis_client") as mock_redis:
        mock_redis.is_available = True
        mock_redis.increment = AsyncMock(return_value=1)
        mock_redis.expire = AsyncMock(return_value=True)

        await rate_limiter.check_rate_limit(scope="verify", identifier="2:1", limit=10, window_seconds=60)

        key = mock_redis.increment.call_args[0][0]
        assert key.startswith("ratelimit:verify:2:1:")
        assert mock_redis.expire.call_args[0][1] == 60


@pytest.mark.unit
async def test_exceeding_limit_raises_429(rate_limiter):
    """Test rate limit check raises exception when limit exceeded."""
    with patch("taskmarket.core.rate_limiter.redis_client") as mock_redis:
        mock_redis.is_available = True
        mock_redis.increment = AsyncMock(return_value=11)

        with pytest.raises(HTTPException) as exc_info:
            await rate_limiter.check_rate_limit(scope="verify", identifier="2:1", limit=10, window_seconds=60)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["X-RateLimit-Limit"] == "10"
        assert 0 < int(exc_info.value.headers["Retry-After"]) <= 60


@pytest.mark.unit
async def test_redis_unavailable_fails_open(rate_limiter):
    """Test rate limit check passes when Redis is unavailable."""
    with patch("taskmarket.core.rate_limiter.redis_client") as mock_redis:
        mock_redis.is_available = False
        mock_redis.increment = AsyncMock()

        await rate_limiter.check_rate_limit(scope="verify", identifier="2:1", limit=10, window_seconds=60)

        mock_redis.increment.assert_not_called()


@pytest.mark.unit
async def test_increment_failure_fails_open(rate_limiter):
    """Test a failed Redis increment does not block the request."""
    with patch("taskmarket.core.rate_limiter.redis_client") as mock_redis:
        mock_redis.is_available = True
        mock_redis.increment = AsyncMock(return_value=None)
        mock_redis.expire = AsyncMock()

        await rate_limiter.check_rate_limit(scope="verify", identifier="2:1", limit=10, window_seconds=60)

        mock_redis.expire.assert_not_called()


@pytest.mark.unit
async def test_verification_limit_uses_settings(rate_limiter, monkeypatch):
    """Test verification limits come from settings and are keyed per user and task."""
    monkeypatch.setattr(settings, "verification_attempts_per_window", 2)
    monkeypatch.setattr(settings, "verification_window_seconds", 30)

    with patch.object(rate_limiter, "check_rate_limit", new=AsyncMock()) as mock_check:
        await rate_limiter.check_verification_rate_limit(user_id="2", task_id="7")

    mock_check.assert_awaited_once_with(scope="verify", identifier="2:7", limit=2, window_seconds=30)
