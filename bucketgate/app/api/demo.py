"""Demo endpoints showing a rate limited route next to an open one."""

import time
from typing import Any

from fastapi import APIRouter, Depends

from bucketgate.app.middleware.rate_limit import RateLimitGuard

router = APIRouter(prefix="/api", tags=["demo"])


@router.get("")
async def get_hello() -> str:
    return "Hello World!"


@router.get("/foo", dependencies=[Depends(RateLimitGuard())])
async def foo() -> dict[str, Any]:
    """Rate limited endpoint: one token per call from the caller's bucket."""
    return {
        "ok": True,
        "at": int(time.time() * 1000),
    }
