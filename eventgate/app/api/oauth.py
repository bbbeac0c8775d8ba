"""OAuth callback endpoint."""

from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Request

from eventgate.app.api.dependencies import AdmissionDep, HandlersDep
from eventgate.app.core.logging import get_log_context, get_logger
from eventgate.app.exceptions import InvalidPayloadError, LockedOutError
from eventgate.app.middleware.client_ip import get_client_key
from eventgate.app.middleware.request_id import get_request_id

logger = get_logger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


def validate_callback_params(
    code: Optional[str], state: Optional[str], error: Optional[str]
) -> Tuple[Optional[Tuple[str, str]], Optional[str]]:
    """Validate OAuth callback query parameters.

    Returns:
        ((code, state), None) on success, (None, error message) otherwise
    """
    if error:
        return None, f"OAuth error: {error}"
    if not code or not code.strip():
        return None, "Missing authorization code"
    if not state or not state.strip():
        return None, "Missing state parameter (CSRF token)"
    return (code.strip(), state.strip()), None


@router.get("/callback")
def oauth_callback(
    request: Request,
    admission: AdmissionDep,
    handlers: HandlersDep,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """Handle the redirect back from Facebook login.

    Every invalid callback counts as a failed attempt for the client; a
    valid one clears the client's counter.
    """
    client = get_client_key(request)

    lockout = admission.check_lockout(client)
    if not lockout.allowed:
        logger.warning(
            "OAuth callback rejected: client locked out",
            extra=get_log_context(request_id=get_request_id(request), client_ip=client),
        )
        raise LockedOutError(retry_after=lockout.retry_after)

    params, message = validate_callback_params(code, state, error)
    if params is None:
        entry = admission.record_auth_failure(client)
        logger.warning(
            f"OAuth callback rejected: {message}",
            extra=get_log_context(
                request_id=get_request_id(request), client_ip=client, attempts=entry.attempts
            ),
        )
        raise InvalidPayloadError(message or "Invalid OAuth callback")

    admission.record_auth_success(client)
    return handlers.on_oauth_callback(*params)
