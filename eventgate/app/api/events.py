"""Public events API.

Rate limiting for these routes is applied by RateLimitMiddleware.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request

from eventgate.app.api.dependencies import HandlersDep

router = APIRouter(prefix="/api", tags=["events"])


@router.get("/events")
def get_events(request: Request, handlers: HandlersDep) -> Dict[str, Any]:
    """List events via the configured handler."""
    return handlers.list_events(request.query_params)
