"""Distributed token bucket rate limiting using Redis.

This package runs the token bucket as a Redis Lua script so that all
processes sharing a Redis instance enforce one consistent limit.
"""

from .models import Decision, RateLimitConfig, RawResult
from .redis_lua import TOKEN_BUCKET_SCRIPT
from .service import RateLimiter, get_rate_limiter, reset_rate_limiter
from .store import BucketStore, RedisBucketStore

__all__ = [
    "Decision",
    "RateLimitConfig",
    "RawResult",
    "TOKEN_BUCKET_SCRIPT",
    "BucketStore",
    "RedisBucketStore",
    "RateLimiter",
    "get_rate_limiter",
    "reset_rate_limiter",
]
