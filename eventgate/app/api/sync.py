"""Manual sync trigger endpoint."""

from typing import Any, Dict

from fastapi import APIRouter, Request

from eventgate.app.api.dependencies import AdmissionDep, HandlersDep, SettingsDep
from eventgate.app.core.logging import get_log_context, get_logger
from eventgate.app.core.security import extract_bearer_token, hash_key, verify_bearer_token
from eventgate.app.exceptions import AuthenticationError, LockedOutError, RateLimitExceededError
from eventgate.app.middleware.client_ip import get_client_key
from eventgate.app.middleware.rate_limit.responses import get_rate_limit_headers
from eventgate.app.middleware.request_id import get_request_id
from eventgate.app.services.admission import SYNC_EVENTS_BUCKET

logger = get_logger(__name__)

router = APIRouter(tags=["sync"])


@router.post("/sync-events")
def sync_events(
    request: Request,
    settings: SettingsDep,
    admission: AdmissionDep,
    handlers: HandlersDep,
) -> Dict[str, Any]:
    """Trigger a sync, guarded by a bearer token and a per-token bucket.

    Clients that keep presenting bad tokens are locked out by brute force
    protection keyed on their IP.
    """
    client = get_client_key(request)

    lockout = admission.check_lockout(client)
    if not lockout.allowed:
        raise LockedOutError(retry_after=lockout.retry_after)

    token = extract_bearer_token(request.headers.get("Authorization"))
    if not verify_bearer_token(token, settings.sync_api_token):
        entry = admission.record_auth_failure(client)
        logger.warning(
            "Sync rejected: invalid token",
            extra=get_log_context(
                request_id=get_request_id(request), client_ip=client, attempts=entry.attempts
            ),
        )
        raise AuthenticationError()
    admission.record_auth_success(client)

    # token is non-empty once verified
    decision = admission.check_token_bucket(hash_key(token or ""), SYNC_EVENTS_BUCKET)
    if not decision.allowed:
        raise RateLimitExceededError(
            retry_after=decision.retry_after,
            headers=get_rate_limit_headers(decision, admission.now_ms()),
        )

    return handlers.on_sync()
