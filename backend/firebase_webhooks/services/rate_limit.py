"""
Fixed-window rate limiting keyed by client identity.

Counting is done by ``limits``: the first hit for a key opens a window that
closes ``window_seconds`` later, whatever happens inside it. A client may
therefore burst up to twice the limit across a window boundary; that is
accepted.
"""

import logging
import time
from dataclasses import dataclass

import redis.asyncio as redis
from limits import RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, RedisStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter
from starlette.requests import Request

from firebase_webhooks.core.errors import RateLimited

logger = logging.getLogger(__name__)

KEY_PREFIX = "firebase-webhooks"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float  # seconds until the current window closes


def redis_storage(url: str, pool: redis.ConnectionPool) -> RedisStorage:
    """Async ``limits`` storage on a redis-py connection pool."""
    return RedisStorage(
        f"async+{url}",
        connection_pool=pool,
        implementation="redispy",
        key_prefix=KEY_PREFIX,
    )


class RateLimiter:
    """
    Per-client fixed-window budget of ``max_requests`` per ``window_seconds``.

    ``MemoryStorage`` keeps windows in this worker only and drops them once
    they close. ``RedisStorage`` shares them across workers. A connection
    pool handed in as ``pool`` is owned and disconnected by ``close``.
    """

    def __init__(
        self,
        storage: Storage,
        max_requests: int,
        window_seconds: int,
        pool: redis.ConnectionPool | None = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self.storage = storage
        self.item = RateLimitItemPerSecond(max_requests, window_seconds)
        self.strategy = FixedWindowRateLimiter(storage)
        self._pool = pool

    @classmethod
    def in_memory(cls, max_requests: int, window_seconds: int) -> "RateLimiter":
        return cls(MemoryStorage(), max_requests, window_seconds)

    @classmethod
    def from_redis_url(
        cls, url: str, max_requests: int, window_seconds: int
    ) -> "RateLimiter":
        pool = redis.ConnectionPool.from_url(url)
        return cls(redis_storage(url, pool), max_requests, window_seconds, pool=pool)

    @property
    def max_requests(self) -> int:
        return self.item.amount

    @property
    def window_seconds(self) -> int:
        return self.item.get_expiry()

    async def count(self, key: str) -> int:
        """Hits recorded for ``key`` in its current window."""
        return await self.storage.get(self.item.key_for(key))

    async def hit(self, key: str) -> RateLimitDecision:
        allowed = await self.strategy.hit(self.item, key)
        stats = await self.strategy.get_window_stats(self.item, key)
        return RateLimitDecision(
            allowed=allowed,
            remaining=stats.remaining,
            limit=self.item.amount,
            retry_after=max(stats.reset_time - time.time(), 0.0),
        )

    async def check(self, key: str) -> RateLimitDecision:
        """Count a hit and raise RateLimited when the window is exhausted."""
        decision = await self.hit(key)
        if not decision.allowed:
            raise RateLimited(
                decision.retry_after,
                f"{key} exceeded {decision.limit} requests per "
                f"{self.window_seconds}s",
            )
        return decision

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.disconnect()
        elif isinstance(self.storage, MemoryStorage):
            await self.storage.reset()


def client_identity(request: Request, trust_forwarded_for: bool = False) -> str:
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
