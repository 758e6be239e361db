"""Per-process rate limiting for the AI endpoints.

Counters live in process memory (fixed window), so limits are best-effort
and not shared between workers.
"""

import math
import time
from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from moodboard.logging_config import logger


def client_ip(request: Request) -> str:
    """Rate limit key: first X-Forwarded-For hop, then the peer address, then ``global``."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "global"


limiter = Limiter(key_func=client_ip, strategy="fixed-window")


def _retry_after(request: Request, exc: RateLimitExceeded) -> int:
    current = getattr(request.state, "view_rate_limit", None)
    if current is None:
        return int(exc.limit.limit.get_expiry())
    item, identifiers = current
    reset_at, _ = request.app.state.limiter.limiter.get_window_stats(item, *identifiers)
    return max(1, math.ceil(reset_at - time.time()))


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with a Retry-After header in seconds."""
    retry_after = _retry_after(request, exc)
    logger.warning(
        "Rate limit exceeded",
        key=client_ip(request),
        path=request.url.path,
        retry_after=retry_after,
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": "Too Many Requests"},
        headers={"Retry-After": str(retry_after)},
    )
