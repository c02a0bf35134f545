"""Bucket store adapter over Redis.

Thin capability wrapper: registers a Lua script once (SCRIPT LOAD), runs it
atomically against one key (EVALSHA), and maps Redis failures onto the
rate limit error taxonomy. It does not interpret script results.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import redis
from redis.exceptions import NoScriptError

from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_log_context, get_logger
from bucketgate.app.core.redis_client import create_redis_client
from bucketgate.app.exceptions import (
    ExecutionError,
    ProcedureError,
    RegistrationError,
    RegistrationUnavailableError,
    StoreUnavailableError,
)
from bucketgate.app.services.token_bucket.models import RawResult

logger = get_logger(__name__)

# OSError covers socket-level failures raised outside redis-py's wrappers
CONNECTIVITY_ERRORS = (
    redis.ConnectionError,
    redis.TimeoutError,
    OSError,
)


class BucketStore(ABC):
    """Abstract base class for bucket stores."""

    @abstractmethod
    async def register(self, procedure: str, force_reload: bool = False) -> str:
        """Register the procedure with the store and return its handle.

        Args:
            procedure: Script body
            force_reload: Register again even if a handle is cached

        Raises:
            RegistrationError: If the store is unreachable or rejects the body.
                An unreachable store raises RegistrationUnavailableError,
                which is also a StoreUnavailableError.
        """

    @abstractmethod
    async def execute(
        self, handle: str, key: str, args: Sequence[Any], now_ms: int
    ) -> RawResult:
        """Run a registered procedure atomically against one key.

        Raises:
            StoreUnavailableError: On connectivity loss or timeout
            ExecutionError: If the store no longer knows the handle
            ProcedureError: If the script fails while running
        """

    async def close(self) -> None:
        """Release store resources."""


class RedisBucketStore(BucketStore):
    """Bucket store backed by Redis Lua scripting.

    Handles are script SHA1 digests. They are cached per script body and
    stay valid until Redis drops its script cache (restart, SCRIPT FLUSH,
    failover), which surfaces as NOSCRIPT on execute.
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
    ) -> None:
        self._redis = redis_client
        self._owns_client = redis_client is None
        self._redis_url = redis_url or settings.redis_url
        self._handles: Dict[str, str] = {}

    def _get_redis(self) -> Any:
        """Get or create Redis client."""
        if self._redis is None:
            self._redis = create_redis_client(self._redis_url)
        return self._redis

    async def register(self, procedure: str, force_reload: bool = False) -> str:
        """SCRIPT LOAD the procedure unless a handle is already cached."""
        if not force_reload and procedure in self._handles:
            return self._handles[procedure]

        try:
            sha = await self._get_redis().script_load(procedure)
        except CONNECTIVITY_ERRORS as e:
            logger.error(f"Redis unreachable while loading script: {e}")
            raise RegistrationUnavailableError(f"Redis unreachable: {e}") from e
        except redis.RedisError as e:
            logger.error(f"Redis rejected token bucket script: {e}")
            raise RegistrationError(f"Script rejected: {e}") from e

        if isinstance(sha, bytes):
            sha = sha.decode("ascii", errors="replace")
        if not isinstance(sha, str) or not sha:
            raise RegistrationError(f"SCRIPT LOAD should return SHA string, got {sha!r}")

        self._handles[procedure] = sha
        logger.info(f"Registered token bucket script {sha}")
        return sha

    async def execute(
        self, handle: str, key: str, args: Sequence[Any], now_ms: int
    ) -> RawResult:
        """EVALSHA handle against a single key."""
        argv = [str(a) for a in args] + [str(int(now_ms))]
        try:
            return await self._get_redis().evalsha(handle, 1, key, *argv)
        except NoScriptError as e:
            self._forget(handle)
            logger.warning(
                "Script handle rejected by Redis",
                extra=get_log_context(bucket_key=key, handle=handle),
            )
            raise ExecutionError(handle) from e
        except CONNECTIVITY_ERRORS as e:
            logger.error(
                f"Redis unavailable: {e}", extra=get_log_context(bucket_key=key)
            )
            raise StoreUnavailableError(f"Redis unavailable: {e}") from e
        except redis.RedisError as e:
            logger.error(
                f"Token bucket script failed: {e}", extra=get_log_context(bucket_key=key)
            )
            raise ProcedureError(f"Script execution failed: {e}") from e

    def _forget(self, handle: str) -> None:
        for procedure, sha in list(self._handles.items()):
            if sha == handle:
                del self._handles[procedure]

    async def close(self) -> None:
        """Close the Redis client if this store created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None
