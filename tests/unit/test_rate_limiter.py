"""Fixed-window rate limiter with the in-memory backend."""

import pytest

from riyaz.config import Settings
from riyaz.rate_limiter import InMemoryBackend, RateLimiter, build_rate_limiter


@pytest.mark.asyncio
async def test_allows_up_to_the_limit():
    limiter = RateLimiter(InMemoryBackend(), requests_per_window=3, window_seconds=60)
    decisions = [await limiter.hit("1.2.3.4", now=1_000.0) for _ in range(4)]
    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert decisions[0].remaining == 2
    assert decisions[-1].remaining == 0
    assert decisions[-1].retry_after == 60


@pytest.mark.asyncio
async def test_identities_are_counted_separately():
    limiter = RateLimiter(InMemoryBackend(), requests_per_window=1, window_seconds=60)
    assert (await limiter.hit("a", now=1_000.0)).allowed
    assert (await limiter.hit("b", now=1_000.0)).allowed
    assert not (await limiter.hit("a", now=1_000.0)).allowed


@pytest.mark.asyncio
async def test_new_window_resets_the_count():
    limiter = RateLimiter(InMemoryBackend(), requests_per_window=1, window_seconds=60)
    assert (await limiter.hit("a", now=1_000.0)).allowed
    assert not (await limiter.hit("a", now=1_010.0)).allowed
    assert (await limiter.hit("a", now=1_080.0)).allowed


def test_redis_backend_needs_a_client():
    settings = Settings(rate_limit_backend="redis")
    limiter = build_rate_limiter(settings, redis_client=None)
    assert isinstance(limiter.backend, InMemoryBackend)
    assert limiter.requests_per_window == settings.rate_limit_requests
