"""Downstream handlers behind the admission layer.

Event storage, Facebook API calls and token exchange live outside this
service. Routes call whatever callables the application was built with;
the defaults only log and acknowledge.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from eventgate.app.core.logging import get_logger
from eventgate.app.services.webhook.models import WebhookEntry

logger = get_logger(__name__)


def log_webhook_entry(entry: WebhookEntry) -> None:
    logger.info(
        f"Webhook entry for page {entry.id}",
        extra={"event_changes": len(entry.event_changes())},
    )


def acknowledge_sync() -> Dict[str, Any]:
    logger.info("Manual sync requested")
    return {"success": True, "message": "Sync scheduled"}


def acknowledge_oauth(code: str, state: str) -> Dict[str, Any]:
    logger.info("OAuth callback accepted")
    return {"success": True}


def empty_events(params: Mapping[str, str]) -> Dict[str, Any]:
    return {"events": [], "hasMore": False}


@dataclass
class EntryPointHandlers:
    """Callables invoked after a request has been admitted."""
    on_webhook_entry: Callable[[WebhookEntry], None] = log_webhook_entry
    on_sync: Callable[[], Dict[str, Any]] = acknowledge_sync
    on_oauth_callback: Callable[[str, str], Dict[str, Any]] = acknowledge_oauth
    list_events: Callable[[Mapping[str, str]], Dict[str, Any]] = empty_events
