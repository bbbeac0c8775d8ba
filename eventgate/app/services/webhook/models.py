"""Facebook webhook payload models."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr


class WebhookChange(BaseModel):
    """One change notification inside an entry."""
    model_config = ConfigDict(extra="allow")

    field: str
    value: Dict[str, Any] = Field(default_factory=dict)


class WebhookEntry(BaseModel):
    """One entry of a webhook delivery; ``id`` is the page (or user) id."""
    model_config = ConfigDict(extra="allow")

    id: StrictStr = Field(..., min_length=1)
    time: Optional[Union[StrictInt, StrictFloat]] = None
    changes: Optional[List[WebhookChange]] = None
    messaging: Optional[List[Dict[str, Any]]] = None

    @property
    def has_event_changes(self) -> bool:
        return bool(self.changes)

    def event_changes(self) -> List[WebhookChange]:
        """Changes for the ``events`` field; other fields are ignored."""
        return [change for change in self.changes or [] if change.field == "events"]


class FacebookWebhookPayload(BaseModel):
    """Top-level webhook delivery body."""
    model_config = ConfigDict(extra="allow")

    object: Literal["page", "user"]
    entry: List[WebhookEntry]


class WebhookState(str, Enum):
    """Stages of webhook admission. ACCEPTED and REJECTED are terminal."""
    RECEIVED = "received"
    SIGNATURE_CHECK = "signature_check"
    PARSE = "parse"
    SCHEMA_VALIDATE = "schema_validate"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class WebhookDecision(BaseModel):
    """Outcome of admitting one webhook delivery.

    ``stage`` is the last stage reached; for a rejection it names the stage
    that failed.
    """
    state: WebhookState
    stage: WebhookState
    status_code: int = 200
    error: Optional[str] = None
    payload: Optional[FacebookWebhookPayload] = None

    @property
    def accepted(self) -> bool:
        return self.state == WebhookState.ACCEPTED


class SubscriptionResult(BaseModel):
    """Outcome of the GET subscription handshake."""
    status_code: int
    challenge: Optional[str] = None
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.status_code == 200
