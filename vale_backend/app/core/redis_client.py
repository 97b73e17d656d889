"""
Redis client initialization and connection management.

Redis holds short-lived idempotency records for money-moving requests.
"""

import logging
import redis.asyncio as redis
from vale_backend.app.core.config import settings

logger = logging.getLogger("vale.redis")

# Connections are opened lazily on first command
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared Redis client."""
    return redis_client


async def ping_redis(client=None) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    client = client or redis_client
    try:
        return bool(await client.ping())
    except (redis.RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    """Release pooled connections on application shutdown."""
    await redis_client.aclose()
