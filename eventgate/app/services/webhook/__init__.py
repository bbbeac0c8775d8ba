"""Facebook webhook admission."""

from eventgate.app.services.webhook.admission import WebhookAdmission, verify_subscription
from eventgate.app.services.webhook.models import (
    FacebookWebhookPayload,
    SubscriptionResult,
    WebhookChange,
    WebhookDecision,
    WebhookEntry,
    WebhookState,
)

__all__ = [
    "WebhookAdmission",
    "verify_subscription",
    "FacebookWebhookPayload",
    "SubscriptionResult",
    "WebhookChange",
    "WebhookDecision",
    "WebhookEntry",
    "WebhookState",
]
