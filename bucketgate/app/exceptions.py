"""Custom exceptions for bucketgate."""

from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from bucketgate.app.services.token_bucket.models import Decision


class RateLimitError(Exception):
    """Base class for rate limiting exceptions with HTTP status code.

    All custom exceptions inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    error_code: str = "rate_limit_error"

    def __init__(self, message: str = "Rate limit error"):
        self.message = message
        super().__init__(message)


class RegistrationError(RateLimitError):
    """Raised when the store is unreachable or rejects the script body.

    Fatal for that registration attempt; safe to retry.
    """
    status_code = 503
    error_code = "registration_failed"

    def __init__(self, detail: str = "Failed to register token bucket script"):
        super().__init__(detail)


class StoreUnavailableError(RateLimitError):
    """Raised on connectivity loss or timeout talking to the bucket store.

    Whether to fail open or closed is left to the caller.
    """
    status_code = 503
    error_code = "store_unavailable"

    def __init__(self, detail: str = "Bucket store unavailable"):
        super().__init__(detail)


class RegistrationUnavailableError(RegistrationError, StoreUnavailableError):
    """Raised when Redis cannot be reached while loading the script.

    Both a registration failure and a store outage, so callers handling
    either see it.
    """
    error_code = "store_unavailable"

    def __init__(self, detail: str = "Bucket store unavailable during registration"):
        super().__init__(detail)


class ExecutionError(RateLimitError):
    """Raised when the store reports the script handle as invalid.

    Recoverable by re-registering the script and retrying once.
    """
    status_code = 503
    error_code = "execution_failed"

    def __init__(self, handle: Optional[str] = None, detail: Optional[str] = None):
        self.handle = handle
        super().__init__(detail or f"Script handle {handle!r} rejected by store")


class MalformedResultError(RateLimitError):
    """Raised when the store reply does not match the four-field result shape.

    Always fatal for the request and never retried; callers must fail closed.
    """
    status_code = 500
    error_code = "malformed_result"

    def __init__(self, raw: Any = None, detail: Optional[str] = None):
        self.raw = raw
        super().__init__(detail or f"Unexpected token bucket reply: {raw!r}")


class ProcedureError(MalformedResultError):
    """Raised when Redis reports an error while running the script.

    Covers Lua runtime errors and WRONGTYPE on a corrupted bucket key. Like a
    malformed reply it means the procedure itself is broken, so it is never
    retried and callers must fail closed.
    """
    error_code = "procedure_failed"

    def __init__(self, detail: str = "Token bucket script failed"):
        super().__init__(None, detail)


class InvalidRateLimitConfigError(RateLimitError):
    """Raised when capacity or refill rate is not a positive finite number."""
    status_code = 500
    error_code = "invalid_rate_limit_config"


class RateLimitExceededError(RateLimitError):
    """Raised by the guard when a request is denied.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(self, decision: "Decision"):
        self.decision = decision
        self.retry_after = decision.retry_after_sec or 1
        super().__init__(
            f"Rate limit exceeded. Retry after {self.retry_after} seconds."
        )

    def to_response(self) -> dict:
        """Convert to API response format."""
        return {
            "statusCode": self.error_code,
            "retryAfter": self.retry_after,
        }
