"""Facebook webhook endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from eventgate.app.api.dependencies import (
    AdmissionDep,
    HandlersDep,
    SettingsDep,
    WebhookAdmissionDep,
)
from eventgate.app.core.logging import get_log_context, get_logger
from eventgate.app.core.security import SIGNATURE_HEADER
from eventgate.app.exceptions import (
    ConfigurationError,
    InvalidPayloadError,
    PayloadTooLargeError,
    SignatureVerificationError,
    VerificationTokenError,
)
from eventgate.app.middleware.request_id import get_request_id
from eventgate.app.services.admission import WEBHOOK_PAGE_LIMIT
from eventgate.app.services.webhook import verify_subscription

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.get("/facebook", response_class=PlainTextResponse)
def subscribe(request: Request, settings: SettingsDep) -> str:
    """Answer the subscription handshake by echoing hub.challenge."""
    result = verify_subscription(request.query_params, settings.facebook_webhook_verify_token)
    if result.status_code == 403:
        raise VerificationTokenError(result.error or "Invalid verify token")
    if not result.valid:
        raise InvalidPayloadError(result.error or "Invalid subscription request")
    logger.info("Webhook subscription verified")
    return result.challenge or ""


@router.post("/facebook")
async def receive(
    request: Request,
    settings: SettingsDep,
    admission: AdmissionDep,
    webhook_admission: WebhookAdmissionDep,
    handlers: HandlersDep,
) -> Dict[str, Any]:
    """Admit a webhook delivery, then hand each unthrottled entry downstream.

    Entries for a page that was delivered within the per-page throttle
    window are skipped, not rejected; Facebook retries whole deliveries on
    non-2xx responses.
    """
    raw_body = await request.body()
    if len(raw_body) > settings.max_webhook_body_bytes:
        raise PayloadTooLargeError(settings.max_webhook_body_bytes)

    decision = webhook_admission.admit(raw_body, request.headers.get(SIGNATURE_HEADER))
    if not decision.accepted or decision.payload is None:
        if decision.status_code == 500:
            raise ConfigurationError(decision.error or "Webhook secret not configured")
        if decision.status_code == 401:
            raise SignatureVerificationError(decision.error or "Invalid signature")
        raise InvalidPayloadError(decision.error or "Invalid payload")

    processed = 0
    throttled = 0
    failed = 0
    for entry in decision.payload.entry:
        if not admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, entry.id).allowed:
            throttled += 1
            logger.info(
                f"Webhook entry for page {entry.id} throttled",
                extra=get_log_context(
                    request_id=get_request_id(request), limiter=WEBHOOK_PAGE_LIMIT
                ),
            )
            continue
        try:
            handlers.on_webhook_entry(entry)
            processed += 1
        except Exception:
            failed += 1
            logger.exception(
                f"Webhook entry for page {entry.id} failed",
                extra=get_log_context(request_id=get_request_id(request)),
            )

    return {
        "success": True,
        "processed": processed,
        "throttled": throttled,
        "failed": failed,
    }
