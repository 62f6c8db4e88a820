import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

import redis.asyncio as redis
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RateLimitConfig:
    """Rate limit defaults"""

    MAX_REQUESTS = 100
    WINDOW_SECONDS = 15 * 60  # 15 minutes
    MESSAGE = "Too many requests from this IP, please try again later."

    # Memory store housekeeping
    MAX_TRACKED_CLIENTS = 10000

    # Redis settings
    REDIS_KEY_PREFIX = "codesplain:ratelimit:"


class RateLimitHit(BaseModel):
    """Counter state for one client after recording a request"""

    key: str
    count: int
    window_start: float
    reset_at: float
    # Seconds until the window resets, measured on the store's own clock
    reset_in: float


class RateLimitStore:
    """Keyed counter store: client address -> (window start, count).

    Each call to `hit` records one request and must be atomic per key.
    """

    async def hit(self, key: str, window_seconds: int) -> RateLimitHit:
        raise NotImplementedError

    async def reset(self, key: str) -> None:
        raise NotImplementedError

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store; windows start at a client's first request"""

    def __init__(self, clock: Callable[[], float] = time.time, max_tracked_clients: int = RateLimitConfig.MAX_TRACKED_CLIENTS):
        self.clock = clock
        self.max_tracked_clients = max_tracked_clients
        self._windows: Dict[str, Dict[str, float]] = {}
        self._lock = asyncio.Lock()

    def _evict_expired(self, now: float) -> None:
        expired_keys: List[str] = [
            key for key, entry in self._windows.items()
            if now >= entry['reset_at']
        ]
        for key in expired_keys:
            self._windows.pop(key, None)

    async def hit(self, key: str, window_seconds: int) -> RateLimitHit:
        async with self._lock:
            now = self.clock()
            if len(self._windows) >= self.max_tracked_clients:
                self._evict_expired(now)

            entry = self._windows.get(key)
            if entry is None or now >= entry['reset_at']:
                entry = {
                    'window_start': now,
                    'reset_at': now + window_seconds,
                    'count': 0
                }
                self._windows[key] = entry

            entry['count'] += 1
            return RateLimitHit(
                key=key,
                count=int(entry['count']),
                window_start=entry['window_start'],
                reset_at=entry['reset_at'],
                reset_in=max(entry['reset_at'] - now, 0)
            )

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)

    def tracked_clients(self) -> int:
        return len(self._windows)


class RedisRateLimitStore(RateLimitStore):
    """Redis-backed store shared by every gateway instance"""

    def __init__(self, redis_url: str, key_prefix: str = RateLimitConfig.REDIS_KEY_PREFIX, redis_client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis: Optional[redis.Redis] = redis_client

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        await self._redis.ping()
        logger.info("Connected to Redis rate limit store")

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def hit(self, key: str, window_seconds: int) -> RateLimitHit:
        if self._redis is None:
            raise RuntimeError("Redis rate limit store is not connected")

        redis_key = f"{self.key_prefix}{key}"
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(redis_key, 0, ex=window_seconds, nx=True)
            pipe.incr(redis_key)
            pipe.pttl(redis_key)
            _, count, ttl_ms = await pipe.execute()

        now = time.time()
        remaining_seconds = max(ttl_ms, 0) / 1000
        reset_at = now + remaining_seconds
        return RateLimitHit(
            key=key,
            count=int(count),
            window_start=reset_at - window_seconds,
            reset_at=reset_at,
            reset_in=remaining_seconds
        )

    async def reset(self, key: str) -> None:
        if self._redis is not None:
            await self._redis.delete(f"{self.key_prefix}{key}")


def build_rate_limit_store(redis_url: Optional[str] = None) -> RateLimitStore:
    if redis_url:
        return RedisRateLimitStore(redis_url)
    return InMemoryRateLimitStore()
