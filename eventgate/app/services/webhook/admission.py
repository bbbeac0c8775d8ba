"""Webhook admission.

A delivery moves RECEIVED -> SIGNATURE_CHECK -> PARSE -> SCHEMA_VALIDATE
-> ACCEPTED, and drops to REJECTED at the first failing stage. The
signature is checked over the exact raw bytes before anything parses the
body.
"""

import json
import logging
from typing import Mapping, Optional

from pydantic import ValidationError

from eventgate.app.core.logging import get_logger
from eventgate.app.core.security import timing_safe_compare
from eventgate.app.services.admission import AdmissionService
from eventgate.app.services.webhook.models import (
    FacebookWebhookPayload,
    SubscriptionResult,
    WebhookDecision,
    WebhookState,
)

HUB_MODE = "hub.mode"
HUB_CHALLENGE = "hub.challenge"
HUB_VERIFY_TOKEN = "hub.verify_token"


def _reject(stage: WebhookState, status_code: int, error: str) -> WebhookDecision:
    return WebhookDecision(
        state=WebhookState.REJECTED, stage=stage, status_code=status_code, error=error
    )


def _describe(exc: ValidationError) -> str:
    """Short message for the first validation error, e.g. "entry.0.id: ..."."""
    errors = exc.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return f"Invalid payload: {location}: {first.get('msg')}"
    return f"Invalid payload: {first.get('msg')}"


class WebhookAdmission:
    """Runs the admission pipeline for Facebook webhook deliveries."""

    def __init__(self, admission: AdmissionService, logger: Optional[logging.Logger] = None):
        self._admission = admission
        self._logger = logger or get_logger(__name__)

    def admit(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookDecision:
        """Admit or reject one delivery.

        Returns:
            WebhookDecision; status_code is 500 when no app secret is
            configured, 401 for a missing or bad signature and 400 for a
            body that is not JSON or not a webhook payload
        """
        if not self._admission.app_secret_configured:
            self._logger.error("Webhook secret not configured")
            return _reject(WebhookState.RECEIVED, 500, "Webhook secret not configured")

        if not signature_header:
            self._logger.warning("Webhook rejected: missing signature header")
            return _reject(WebhookState.RECEIVED, 401, "Missing signature")

        result = self._admission.verify_webhook_signature(raw_body, signature_header)
        if not result.valid:
            self._logger.warning(
                "Webhook rejected: invalid signature",
                extra={"reason": result.error},
            )
            return _reject(WebhookState.SIGNATURE_CHECK, 401, "Invalid signature")

        try:
            data = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            return _reject(WebhookState.PARSE, 400, "Invalid JSON")

        try:
            payload = FacebookWebhookPayload.model_validate(data)
        except ValidationError as e:
            error = _describe(e)
            self._logger.warning(f"Webhook rejected: {error}")
            return _reject(WebhookState.SCHEMA_VALIDATE, 400, error)

        return WebhookDecision(
            state=WebhookState.ACCEPTED,
            stage=WebhookState.ACCEPTED,
            payload=payload,
        )


def verify_subscription(params: Mapping[str, str], verify_token: str) -> SubscriptionResult:
    """Validate the GET handshake Facebook sends when subscribing a webhook.

    Args:
        params: Query parameters of the handshake request
        verify_token: Configured verify token; an empty value rejects everything

    Returns:
        SubscriptionResult with the challenge to echo on success
    """
    mode = params.get(HUB_MODE)
    challenge = params.get(HUB_CHALLENGE)
    token = params.get(HUB_VERIFY_TOKEN)

    if not mode or not challenge or not token:
        return SubscriptionResult(
            status_code=400, error="Missing required webhook validation parameters"
        )

    if mode != "subscribe":
        return SubscriptionResult(status_code=400, error="Invalid hub.mode")

    if not verify_token or not timing_safe_compare(token, verify_token):
        return SubscriptionResult(status_code=403, error="Invalid verify token")

    return SubscriptionResult(status_code=200, challenge=challenge)
