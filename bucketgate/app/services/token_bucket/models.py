"""Data models for the distributed token bucket."""

import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from bucketgate.app.core.config import settings
from bucketgate.app.exceptions import InvalidRateLimitConfigError, MalformedResultError

# Raw EVALSHA reply: [admitted, waitMs, tokens, timeToFullSec]
RawResult = Sequence[Any]


@dataclass(frozen=True)
class RateLimitConfig:
    """Bucket parameters supplied at check time.

    Attributes:
        capacity: Maximum tokens the bucket holds (burst size)
        refill_rate: Tokens added per second
        reload: Force re-registration of the script before executing
    """
    capacity: float
    refill_rate: float
    reload: bool = field(default=False)

    def validate(self) -> None:
        """Reject non-positive or non-finite values before they reach Redis."""
        for name in ("capacity", "refill_rate"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidRateLimitConfigError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value <= 0:
                raise InvalidRateLimitConfigError(f"{name} must be positive, got {value!r}")

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        """Create from application settings."""
        return cls(
            capacity=settings.rate_limit_capacity,
            refill_rate=settings.rate_limit_refill_rate,
            reload=settings.rate_limit_reload,
        )


@dataclass(frozen=True)
class Decision:
    """Outcome of one admission check.

    Attributes:
        admitted: Whether the request may proceed
        wait_ms: Milliseconds until one token is available (0 when admitted)
        tokens_remaining: Tokens left in the bucket after the check
        time_to_full_sec: Seconds until the bucket is full again
        limit: Bucket capacity the check ran with
        retry_after_sec: Client-facing retry delay, only set for denials
    """
    admitted: bool
    wait_ms: int
    tokens_remaining: float
    time_to_full_sec: int
    limit: float
    retry_after_sec: Optional[int] = None

    @property
    def remaining(self) -> int:
        """Whole tokens left, never negative."""
        return max(0, math.floor(self.tokens_remaining))

    def to_headers(self) -> dict[str, str]:
        """Render standard rate limit response headers."""
        limit = int(self.limit) if float(self.limit).is_integer() else self.limit
        headers = {
            "RateLimit-Limit": str(limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.time_to_full_sec),
        }
        if not self.admitted:
            headers["Retry-After"] = str(self.retry_after_sec)
        return headers

    @classmethod
    def from_raw(cls, raw: RawResult, config: RateLimitConfig) -> "Decision":
        """Validate a raw script reply and convert it to a decision.

        Raises:
            MalformedResultError: If the reply is not exactly
                [0|1, wait >= 0, finite tokens, time-to-full >= 0]
        """
        if not isinstance(raw, (list, tuple)) or len(raw) != 4:
            raise MalformedResultError(raw, "Expected a four-element reply")

        flag, wait_ms, tokens, time_to_full = (_to_number(raw, v) for v in raw)

        if flag not in (0, 1):
            raise MalformedResultError(raw, f"Admission flag must be 0 or 1, got {flag!r}")
        if wait_ms < 0:
            raise MalformedResultError(raw, f"Negative wait: {wait_ms!r}")
        if time_to_full < 0:
            raise MalformedResultError(raw, f"Negative time to full: {time_to_full!r}")

        admitted = flag == 1
        wait_ms = math.ceil(wait_ms)
        retry_after_sec = None if admitted else max(1, math.ceil(wait_ms / 1000))
        return cls(
            admitted=admitted,
            wait_ms=wait_ms,
            tokens_remaining=float(tokens),
            time_to_full_sec=math.ceil(time_to_full),
            limit=config.capacity,
            retry_after_sec=retry_after_sec,
        )


def _to_number(raw: RawResult, value: Any) -> float:
    """Coerce one reply element to a finite number."""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise MalformedResultError(raw, f"Non-numeric element: {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResultError(raw, f"Non-numeric element: {value!r}")
    if not math.isfinite(value):
        raise MalformedResultError(raw, f"Non-finite element: {value!r}")
    return value
