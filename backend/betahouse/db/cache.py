"""Redis client used for the revoked-token list and the notification cache.

The client is created lazily on first use; ``redis.asyncio`` does not open a
connection until the first command, so importing this module never blocks
on the cache server.
"""

from config.config import settings
from core.logging import logger
from redis.asyncio import Redis

_client: Redis | None = None


def get_redis() -> Redis:
    """Return the process-wide Redis client, creating it if needed."""

    global _client
    if _client is None:
        _client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Redis client configured")
    return _client


async def get_cache() -> Redis:
    """FastAPI dependency returning the shared Redis client.

    Usage:
        cache: Redis = Depends(get_cache)
    """

    return get_redis()


async def close_cache() -> None:
    """Close the Redis connection pool on shutdown."""

    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis client closed")
