"""Rate limiting for EventGate.

This package provides the in-memory admission primitives (sliding window,
token bucket, brute force protection), the header and 429 helpers, and a
middleware that applies sliding window limits to path prefixes.
"""

from typing import TYPE_CHECKING, Dict, Mapping, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from eventgate.app.core.logging import get_log_context, get_logger
from eventgate.app.middleware.client_ip import get_client_key

# Re-export models
from eventgate.app.middleware.rate_limit.models import (
    AdmissionDecision,
    LockoutEntry,
    LockoutStatus,
    SlidingWindowStatus,
    TokenBucketStatus,
)

# Re-export limiters
from eventgate.app.middleware.rate_limit.brute_force import BruteForceProtection
from eventgate.app.middleware.rate_limit.responses import (
    get_rate_limit_headers,
    rate_limit_exceeded_response,
    seconds_until,
)
from eventgate.app.middleware.rate_limit.sliding_window import (
    NamedSlidingWindowLimiter,
    SlidingWindowRateLimiter,
    create_sliding_window_limiter,
)
from eventgate.app.middleware.rate_limit.token_bucket import TokenBucketRateLimiter

if TYPE_CHECKING:
    from eventgate.app.services.admission import AdmissionService

logger = get_logger(__name__)

__all__ = [
    # Models
    "AdmissionDecision",
    "LockoutEntry",
    "LockoutStatus",
    "SlidingWindowStatus",
    "TokenBucketStatus",
    # Limiters
    "BruteForceProtection",
    "NamedSlidingWindowLimiter",
    "SlidingWindowRateLimiter",
    "TokenBucketRateLimiter",
    "create_sliding_window_limiter",
    # Responses
    "get_rate_limit_headers",
    "rate_limit_exceeded_response",
    "seconds_until",
    # Middleware
    "RateLimitMiddleware",
]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce sliding window limits on path prefixes.

    Limits are applied per client IP (see client_ip.get_client_key).
    Requests outside every configured prefix pass through untouched.
    """

    def __init__(
        self,
        app,
        admission: "AdmissionService",
        rules: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the middleware.

        Args:
            app: ASGI application
            admission: Service holding the sliding window limiter
            rules: Path prefix -> rate limit name, e.g.
                {"/api/events": "get-events"}
        """
        super().__init__(app)
        self.admission = admission
        # Longest prefix first so nested prefixes can carry their own limit
        self.rules: Dict[str, str] = dict(
            sorted((rules or {}).items(), key=lambda item: len(item[0]), reverse=True)
        )

    def _match(self, path: str) -> Optional[str]:
        for prefix, name in self.rules.items():
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return name
        return None

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        name = self._match(request.url.path)
        if name is None:
            return await call_next(request)

        key = get_client_key(request)
        decision = self.admission.check_rate_limit(name, key)
        headers = get_rate_limit_headers(decision, self.admission.now_ms())

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                extra=get_log_context(
                    request_id=getattr(request.state, "request_id", None),
                    client_ip=key,
                    limiter=name,
                    path=request.url.path,
                    method=request.method,
                ),
            )
            return rate_limit_exceeded_response(decision.retry_after, headers)

        response = await call_next(request)
        for header, value in headers.items():
            response.headers[header] = value
        return response
