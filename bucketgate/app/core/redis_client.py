"""Shared Redis client management.

This module provides a singleton-like Redis client that is initialized
on application startup and shared by the rate limiter and health check.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis
import redis.asyncio as aioredis

from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_logger

logger = get_logger(__name__)

# Shared Redis client for connection pooling
_shared_redis_client: aioredis.Redis | None = None


def get_redis_client() -> aioredis.Redis:
    """Get the shared Redis client instance.

    Raises:
        RuntimeError: If the Redis client has not been initialized.
    """
    if _shared_redis_client is None:
        raise RuntimeError(
            "Redis client not initialized. Ensure lifespan context is active."
        )
    return _shared_redis_client


def create_redis_client(url: str | None = None) -> aioredis.Redis:
    """Create a new Redis client with default settings.

    The returned client should be closed with ``aclose()`` when done.
    """
    return aioredis.from_url(
        url or settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
    )


@asynccontextmanager
async def init_redis_client() -> AsyncGenerator[aioredis.Redis, None]:
    """Initialize and yield the shared Redis client.

    This context manager should be used in the FastAPI lifespan:

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with init_redis_client():
                yield
    """
    global _shared_redis_client

    _shared_redis_client = create_redis_client()

    try:
        yield _shared_redis_client
    finally:
        if _shared_redis_client is not None:
            try:
                await _shared_redis_client.aclose()
            except (redis.RedisError, OSError) as e:
                # Shutdown continues even if the connection is already gone
                logger.warning(f"Error closing Redis connection: {e}")
            _shared_redis_client = None
