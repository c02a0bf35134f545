"""Distributed token bucket rate limiter.

Decides admit/deny for a (route, caller) pair by running the token bucket
Lua script atomically in Redis. Many stateless processes can share one
limit because Redis serializes every check against the same key.
"""

import time
from datetime import datetime
from typing import Callable, Optional, Union

from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_log_context, get_logger
from bucketgate.app.exceptions import ExecutionError, MalformedResultError

from .models import Decision, RateLimitConfig
from .redis_lua import TOKEN_BUCKET_SCRIPT
from .store import BucketStore, RedisBucketStore

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """Token bucket rate limiter backed by a shared bucket store.

    Provides:
    - One bucket per (route, caller), keyed ``{prefix}:{route}:{caller}``
    - Lazy, cached script registration (re-registered on explicit reload)
    - A single re-register-and-retry when the store forgets the script
    - Strict validation of the script reply

    Redis key format:
    - rl:{route_id}:{caller_id} - hash with fields tokens, last
    """

    procedure = TOKEN_BUCKET_SCRIPT

    def __init__(
        self,
        store: Optional[BucketStore] = None,
        key_prefix: Optional[str] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._store = store or RedisBucketStore()
        self._key_prefix = key_prefix or settings.rate_limit_key_prefix
        self._clock = clock or _now_ms
        self._handle: Optional[str] = None

    @property
    def store(self) -> BucketStore:
        return self._store

    def make_key(self, route_id: str, caller_id: str) -> str:
        """Create Redis key for a route/caller bucket."""
        return f"{self._key_prefix}:{route_id}:{caller_id}"

    async def _load(self, force: bool = False) -> str:
        """Register the script on first use or when forced."""
        if self._handle is None or force:
            self._handle = await self._store.register(self.procedure, force_reload=force)
        return self._handle

    async def check(
        self,
        route_id: str,
        caller_id: str,
        config: RateLimitConfig,
        now: Union[int, datetime, None] = None,
    ) -> Decision:
        """Consume one token from the caller's bucket for this route.

        A cancelled or timed-out call abandons the Redis round-trip only.
        If the script already ran, its write stands and the token stays
        consumed.

        Args:
            route_id: Route the bucket is scoped to
            caller_id: Caller identity
            config: Bucket capacity and refill rate
            now: Epoch milliseconds or datetime (defaults to the clock)

        Returns:
            Decision for this request

        Raises:
            InvalidRateLimitConfigError: If capacity or rate is not positive
            StoreUnavailableError: If Redis cannot be reached, including
                during script registration
            RegistrationError: If Redis rejects the script
            ExecutionError: If the script handle is rejected twice
            MalformedResultError: If the reply has the wrong shape
            ProcedureError: If the script fails while running (not retried)
        """
        config.validate()
        key = self.make_key(route_id, caller_id)
        now_ms = self._to_ms(now)
        args = (config.capacity, config.refill_rate)

        handle = await self._load(force=config.reload)
        try:
            raw = await self._store.execute(handle, key, args, now_ms)
        except ExecutionError:
            logger.warning(
                "Re-registering token bucket script after rejected handle",
                extra=get_log_context(route_id=route_id, caller_id=caller_id, bucket_key=key),
            )
            self._handle = None
            handle = await self._load(force=True)
            raw = await self._store.execute(handle, key, args, now_ms)

        try:
            decision = Decision.from_raw(raw, config)
        except MalformedResultError as e:
            logger.error(
                f"Malformed token bucket reply: {e.message}",
                extra=get_log_context(bucket_key=key, raw=repr(raw)),
            )
            raise

        if not decision.admitted:
            logger.debug(
                "Request denied by token bucket",
                extra=get_log_context(
                    route_id=route_id,
                    caller_id=caller_id,
                    bucket_key=key,
                    wait_ms=decision.wait_ms,
                ),
            )
        return decision

    def _to_ms(self, now: Union[int, datetime, None]) -> int:
        if now is None:
            return int(self._clock())
        if isinstance(now, datetime):
            return int(now.timestamp() * 1000)
        return int(now)

    async def close(self) -> None:
        await self._store.close()


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter(store: Optional[BucketStore] = None) -> RateLimiter:
    """Get the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(store=store)
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the global rate limiter instance."""
    global _rate_limiter
    _rate_limiter = None
