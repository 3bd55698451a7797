"""Fixed-window request rate limiter with pluggable counter backends.

The limiter is created once at startup, stored on ``app.state`` and handed to
the rate limit middleware. The Redis backend shares counters across API
processes; the in-memory backend is for single-process deployments and tests.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Protocol

import redis.asyncio as redis

from riyaz.config import Settings


class CounterBackend(Protocol):
    async def incr(self, key: str, ttl_seconds: int) -> int: ...


class InMemoryBackend:
    """Process-local counters. Expired windows are dropped on access."""

    def __init__(self) -> None:
        self._counts: dict[str, tuple[float, int]] = {}
        self._lock = asyncio.Lock()

    async def incr(self, key: str, ttl_seconds: int) -> int:
        now = time.monotonic()
        async with self._lock:
            expires_at, count = self._counts.get(key, (0.0, 0))
            if expires_at <= now:
                expires_at, count = now + ttl_seconds, 0
            count += 1
            self._counts[key] = (expires_at, count)
            if len(self._counts) > 10_000:
                self._counts = {k: v for k, v in self._counts.items() if v[0] > now}
            return count


class RedisBackend:
    """INCR + EXPIRE in one pipeline, shared across processes."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def incr(self, key: str, ttl_seconds: int) -> int:
        pipe = self._client.pipeline()
        pipe.incr(key)
        pipe.expire(key, ttl_seconds)
        results: list[Any] = await pipe.execute()
        return int(results[0])


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class RateLimiter:
    def __init__(self, backend: CounterBackend, requests_per_window: int, window_seconds: int) -> None:
        self.backend = backend
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def hit(self, identity: str, now: float | None = None) -> RateLimitDecision:
        """Count one request for identity in the current window."""
        window = int(now if now is not None else time.time()) // self.window_seconds
        count = await self.backend.incr(f"ratelimit:{identity}:{window}", self.window_seconds + 1)
        return RateLimitDecision(
            allowed=count <= self.requests_per_window,
            limit=self.requests_per_window,
            remaining=max(0, self.requests_per_window - count),
            retry_after=self.window_seconds,
        )


def build_rate_limiter(settings: Settings, redis_client: redis.Redis | None = None) -> RateLimiter:
    """Limiter for the configured backend. Falls back to memory without a Redis client."""
    backend: CounterBackend
    if settings.rate_limit_backend == "redis" and redis_client is not None:
        backend = RedisBackend(redis_client)
    else:
        backend = InMemoryBackend()
    return RateLimiter(backend, settings.rate_limit_requests, settings.rate_limit_window_seconds)
