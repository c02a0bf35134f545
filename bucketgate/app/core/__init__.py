"""Core utilities for bucketgate."""

from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_logger, setup_logging
from bucketgate.app.core.redis_client import (
    create_redis_client,
    get_redis_client,
    init_redis_client,
)

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "create_redis_client",
    "get_redis_client",
    "init_redis_client",
]
