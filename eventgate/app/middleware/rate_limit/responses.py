"""Rate limit response headers and 429 bodies.

X-RateLimit-Reset and Retry-After are always expressed as seconds until
reset, which stays correct whichever clock the limiter runs on.
"""

import math
from typing import Any, Dict, Literal, Optional

from fastapi.responses import JSONResponse

DEFAULT_RETRY_AFTER = 60

RateLimitError = Literal["Rate limit exceeded", "Too many requests"]


def seconds_until(reset_at: Optional[float], now_ms: float) -> Optional[int]:
    """Whole seconds from now until reset_at (ms), rounded up, never negative."""
    if reset_at is None:
        return None
    return max(0, math.ceil((reset_at - now_ms) / 1000))


def get_rate_limit_headers(status: Any, now_ms: float) -> Dict[str, str]:
    """Build X-RateLimit-* headers from a limiter status or admission decision.

    Each header is emitted only when the corresponding value is known.

    Args:
        status: Object with optional limit, used, remaining and reset_at
            attributes (SlidingWindowStatus, AdmissionDecision)
        now_ms: Current time on the limiter's clock
    """
    headers: Dict[str, str] = {}

    limit = getattr(status, "limit", None)
    used = getattr(status, "used", None)
    remaining = getattr(status, "remaining", None)
    reset = seconds_until(getattr(status, "reset_at", None), now_ms)

    if limit is not None:
        headers["X-RateLimit-Limit"] = str(int(limit))
    if used is not None:
        headers["X-RateLimit-Used"] = str(int(used))
    if remaining is not None:
        headers["X-RateLimit-Remaining"] = str(max(0, int(remaining)))
    if reset is not None:
        headers["X-RateLimit-Reset"] = str(reset)

    return headers


def rate_limit_exceeded_response(
    retry_after: Optional[int] = None,
    headers: Optional[Dict[str, str]] = None,
    error: RateLimitError = "Rate limit exceeded",
) -> JSONResponse:
    """Create the standard 429 response.

    Body: {"error": <error>, "retryAfter": <seconds>}, mirrored in the
    Retry-After header.
    """
    if retry_after is None:
        retry_after = DEFAULT_RETRY_AFTER
    retry_after = max(0, int(retry_after))

    response_headers = dict(headers or {})
    response_headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=429,
        content={"error": error, "retryAfter": retry_after},
        headers=response_headers,
    )
