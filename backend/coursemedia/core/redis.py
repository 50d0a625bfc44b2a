"""Redis connection configuration."""

import redis.asyncio as redis

from coursemedia.core.config import settings


def create_redis_client() -> redis.Redis:
    """Create a Redis client bound to the running event loop.

    Celery tasks each run their own event loop, so a client must not be
    shared between tasks. Close it with ``await client.aclose()``.
    """
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def processing_lock_key(video_id) -> str:
    """Redis key guarding at most one in-flight processing job per video."""
    return f"video-processing:{video_id}"
