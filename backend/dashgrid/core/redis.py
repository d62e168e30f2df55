"""Shared Redis connection backing the document store.

Responses stay as bytes: documents are stored and returned as raw JSON.
"""

from redis.asyncio import Redis

from dashgrid.core.config import settings

_redis_client: Redis | None = None


async def get_redis() -> Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.documents.redis_url, decode_responses=False)
    return _redis_client


async def close_redis() -> None:
    """Release the pooled connection. The next get_redis() reconnects."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
