"""Rate limiting guard for FastAPI routes.

Routes opt in with ``Depends(RateLimitGuard())``. The guard resolves the
caller, runs the token bucket check for the request path, writes the
standard RateLimit-* headers, and rejects denied requests with HTTP 429.
"""

from typing import Any, Optional

from fastapi import Request, Response

from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_log_context, get_logger
from bucketgate.app.exceptions import (
    ExecutionError,
    RateLimitExceededError,
    RegistrationError,
    StoreUnavailableError,
)
from bucketgate.app.services.token_bucket import (
    Decision,
    RateLimitConfig,
    RateLimiter,
    get_rate_limiter,
)

logger = get_logger(__name__)

# Store failures whose handling follows the fail-open/fail-closed policy
STORE_FAILURES = (StoreUnavailableError, RegistrationError, ExecutionError)


def resolve_caller_id(request: Request) -> str:
    """Get the caller identity for the request.

    Uses the user an auth layer placed on ``request.state.user`` if any,
    then the configured user header, then the anonymous id.
    """
    user: Any = getattr(request.state, "user", None)
    user_id = None
    if isinstance(user, dict):
        user_id = user.get("id")
    elif user is not None:
        user_id = getattr(user, "id", None)

    if user_id is None:
        user_id = request.headers.get(settings.rate_limit_user_header)
    if not user_id:
        user_id = settings.rate_limit_anonymous_id
    return str(user_id)


class RateLimitGuard:
    """FastAPI dependency enforcing a token bucket per route and caller.

    Denied requests raise RateLimitExceededError, rendered as 429 by the
    application's exception handler. Malformed store replies and script errors
    always reject the request. Store outages follow ``settings.rate_limit_fail_closed``.
    """

    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        config: Optional[RateLimitConfig] = None,
    ) -> None:
        self._limiter = limiter
        self._config = config

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter or get_rate_limiter()

    @property
    def config(self) -> RateLimitConfig:
        return self._config or RateLimitConfig.from_settings()

    async def __call__(self, request: Request, response: Response) -> Optional[Decision]:
        caller_id = resolve_caller_id(request)
        route_id = request.url.path

        try:
            decision = await self.limiter.check(route_id, caller_id, self.config)
        except STORE_FAILURES as e:
            context = get_log_context(
                request_id=getattr(request.state, "request_id", None),
                route_id=route_id,
                caller_id=caller_id,
            )
            if settings.rate_limit_fail_closed:
                logger.warning(
                    f"Rate limiting fail-closed triggered due to {e.error_code}. "
                    "Request denied.",
                    extra=context,
                )
                raise
            logger.warning(
                f"Rate limiting fail-open triggered due to {e.error_code}. "
                "Request allowed without rate limit check.",
                extra=context,
            )
            return None

        for name, value in decision.to_headers().items():
            response.headers[name] = value

        if not decision.admitted:
            raise RateLimitExceededError(decision)
        return decision
