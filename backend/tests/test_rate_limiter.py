"""Tests for the sliding-window rate limiter."""

import pytest

from app.dependencies import RateLimiter
from app.exceptions import RateLimitError


@pytest.mark.asyncio
class TestRateLimiter:
    async def test_counts_down(self, fake_redis):
        limiter = RateLimiter("test", max_requests=3)
        assert await limiter.check("client", fake_redis) == 2
        assert await limiter.check("client", fake_redis) == 1
        assert await limiter.check("client", fake_redis) == 0

    async def test_raises_when_exceeded(self, fake_redis):
        limiter = RateLimiter("test", max_requests=2)
        await limiter.check("client", fake_redis)
        await limiter.check("client", fake_redis)
        with pytest.raises(RateLimitError) as exc_info:
            await limiter.check("client", fake_redis)
        assert exc_info.value.status_code == 429
        assert exc_info.value.details["retry_after_seconds"] == 60

    async def test_clients_independent(self, fake_redis):
        limiter = RateLimiter("test", max_requests=1)
        await limiter.check("client-a", fake_redis)
        assert await limiter.check("client-b", fake_redis) == 0
