"""Shared fixtures: an in-process Redis that runs the real token bucket script."""

from unittest.mock import patch

import fakeredis
import pytest

from bucketgate.app.services.token_bucket import (
    RateLimitConfig,
    RateLimiter,
    RedisBucketStore,
    reset_rate_limiter,
)

T0 = 1_700_000_000_000


class Clock:
    """Settable millisecond clock."""

    def __init__(self, now_ms=T0):
        self.now_ms = now_ms

    def __call__(self):
        return self.now_ms

    def advance(self, ms):
        self.now_ms += ms


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global limiter before and after each test."""
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def redis_server():
    """Private fakeredis server; Lua scripts run through lupa."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return fakeredis.FakeAsyncRedis(server=redis_server)


@pytest.fixture
def sync_redis(redis_server):
    """Synchronous view of the same server, for tests outside an event loop."""
    return fakeredis.FakeRedis(server=redis_server)


@pytest.fixture
def script_loads(redis_client):
    """Spy on SCRIPT LOAD calls."""
    with patch.object(redis_client, "script_load", wraps=redis_client.script_load) as spy:
        yield spy


@pytest.fixture
def store(redis_client):
    return RedisBucketStore(redis_client=redis_client)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def limiter(store, clock):
    return RateLimiter(store=store, clock=clock)


@pytest.fixture
def config():
    """Capacity 20, rate 10 tokens/sec."""
    return RateLimitConfig(capacity=20, refill_rate=10)


async def bucket_state(redis_client, key):
    """Return (tokens, last) as stored in the bucket hash."""
    tokens, last = await redis_client.hmget(key, "tokens", "last")
    return float(tokens), float(last)
