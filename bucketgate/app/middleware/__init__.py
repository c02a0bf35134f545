"""Middleware package for bucketgate."""

from bucketgate.app.middleware.rate_limit import RateLimitGuard, resolve_caller_id
from bucketgate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "RateLimitGuard",
    "resolve_caller_id",
    "RequestIdMiddleware",
    "get_request_id",
]
