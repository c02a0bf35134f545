from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bucketgate.app.api.demo import router as demo_router
from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_log_context, get_logger, setup_logging
from bucketgate.app.core.redis_client import get_redis_client, init_redis_client
from bucketgate.app.exceptions import RateLimitError, RateLimitExceededError
from bucketgate.app.middleware.request_id import RequestIdMiddleware
from bucketgate.app.services.token_bucket import (
    RedisBucketStore,
    get_rate_limiter,
    reset_rate_limiter,
)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
        """Application lifespan context manager.

        Opens the shared Redis client and binds the global rate limiter to
        it on startup; closes the client on shutdown.
        """
        async with init_redis_client() as redis_client:
            reset_rate_limiter()
            get_rate_limiter(store=RedisBucketStore(redis_client=redis_client))

            logger.info(
                "Application startup complete",
                extra={
                    "capacity": settings.rate_limit_capacity,
                    "refill_rate": settings.rate_limit_refill_rate,
                    "fail_closed": settings.rate_limit_fail_closed,
                },
            )

            yield {"redis": redis_client}

            await get_rate_limiter().close()

        reset_rate_limiter()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="bucketgate",
        description="Distributed token bucket rate limiting backed by Redis",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "RateLimit-Limit",
            "RateLimit-Remaining",
            "RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )

    # Request ID middleware (innermost - closest to route)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(demo_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with Redis connectivity status."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}
        try:
            await get_redis_client().ping()
            health_status["components"]["redis"] = {"status": "ok"}
        except Exception as e:
            health_status["status"] = "degraded"
            health_status["components"]["redis"] = {
                "status": "error",
                "error": str(e)[:100]  # Truncate for security
            }
        return health_status

    @app.exception_handler(RateLimitExceededError)
    async def rate_limited_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        """Handle RateLimitExceededError and return HTTP 429 response."""
        return JSONResponse(
            status_code=429,
            content=exc.to_response(),
            headers=exc.decision.to_headers(),
        )

    @app.exception_handler(RateLimitError)
    async def rate_limit_error_handler(request: Request, exc: RateLimitError) -> JSONResponse:
        """Handle store and protocol failures of the rate limiter."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            f"Rate limit check failed: {exc.message}",
            extra=get_log_context(request_id=request_id, path=request.url.path),
        )
        content = {"error": exc.error_code, "request_id": request_id}
        if settings.debug:
            content["message"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=content)

    return app


# Create the application instance
app = create_app()
