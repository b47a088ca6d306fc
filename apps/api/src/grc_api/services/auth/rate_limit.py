"""Fixed-window request throttling using Redis counters."""

from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio import Redis

from grc_api.core.settings import settings


@dataclass
class RateLimitState:
    """Outcome of a single rate-limit check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int | None


class RateLimiter:
    """Counts hits per key inside a fixed window.

    The first hit in a window creates the counter and sets its expiry; hits
    past ``limit`` are refused until the key expires.
    """

    def __init__(self, redis_client: Redis | None = None, *, namespace: str = "ratelimit") -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._namespace = namespace

    def _key(self, scope: str, identifier: str) -> str:
        return f"{self._namespace}:{scope}:{identifier}"

    async def hit(self, scope: str, identifier: str, *, limit: int, window_seconds: int) -> RateLimitState:
        key = self._key(scope, identifier)
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, window_seconds)

        if count > limit:
            ttl = await self._redis.ttl(key)
            if ttl is None or ttl < 0:
                # Counter lost its expiry; re-arm so the key cannot lock forever.
                await self._redis.expire(key, window_seconds)
                ttl = window_seconds
            return RateLimitState(allowed=False, remaining=0, retry_after_seconds=int(ttl))

        return RateLimitState(allowed=True, remaining=max(limit - count, 0), retry_after_seconds=None)

    async def reset(self, scope: str, identifier: str) -> None:
        await self._redis.delete(self._key(scope, identifier))
