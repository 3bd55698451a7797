"""Optional Redis client used for pub/sub fan-out and shared rate-limit counters.

The engine never needs Redis for correctness: with ``RIYAZ_REDIS_URL`` empty
the client stays ``None`` and callers skip publishing.
"""

import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Create the shared client. An empty URL leaves Redis disabled."""
    global _client  # noqa: PLW0603
    if not url:
        logger.info("Redis disabled (no RIYAZ_REDIS_URL)")
        return
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis_or_none() -> redis.Redis | None:
    """The shared client, or None when Redis is disabled or not started (tests, CLI)."""
    return _client
