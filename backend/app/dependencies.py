"""Application-level dependencies.

Owns the shared Redis client and the per-client sliding-window rate
limiters used by the ingestion and consent endpoints.
"""

from __future__ import annotations

import time
import uuid
from typing import AsyncGenerator, Optional

import redis.asyncio as aioredis

from app.config import get_settings
from app.exceptions import RateLimitError
from app.logging_config import get_logger
from app.metrics import RATE_LIMIT_HITS

logger = get_logger(__name__)

# Sessions, consent records and recent events all live here
_redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    """Connect to Redis and verify the connection."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await _redis_client.ping()


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Get Redis connection as a FastAPI dependency."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    yield _redis_client


class RateLimiter:
    """Sliding-window limiter keyed by an anonymized client identifier.

    Each request adds one member to a sorted set scored by arrival time;
    members older than the window are pruned before counting.
    """

    def __init__(
        self,
        key_prefix: str,
        max_requests: int,
        window_seconds: int = 60,
    ) -> None:
        self.key_prefix = key_prefix
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def _key(self, client_hash: str) -> str:
        return f"ratelimit:{self.key_prefix}:{client_hash}"

    async def check(self, client_hash: str, redis: aioredis.Redis) -> int:
        """Count this request; return the requests left in the window.

        Raises RateLimitError once the window is full.
        """
        key = self._key(client_hash)
        now = time.time()

        pipe = redis.pipeline()
        pipe.zremrangebyscore(key, 0, now - self.window_seconds)
        # Unique member so bursts within one clock tick are all counted
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.zcard(key)
        pipe.expire(key, self.window_seconds)
        _, _, request_count, _ = await pipe.execute()

        if request_count > self.max_requests:
            RATE_LIMIT_HITS.labels(
                endpoint=self.key_prefix, limit_type="sliding_window"
            ).inc()
            logger.warning("rate_limit_exceeded", limiter=self.key_prefix)
            raise RateLimitError(
                limit_type=self.key_prefix,
                retry_after=self.window_seconds,
            )
        return self.max_requests - request_count


events_rate_limiter = RateLimiter(
    key_prefix="events",
    max_requests=get_settings().rate_limit_events_per_minute,
)

consent_rate_limiter = RateLimiter(key_prefix="consent", max_requests=20)
