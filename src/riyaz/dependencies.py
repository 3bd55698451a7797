"""Shared FastAPI dependencies."""

from riyaz.redis_client import get_redis_or_none


async def get_redis_dep() -> object:
    """The Redis client, or None when Redis is not configured."""
    return get_redis_or_none()
