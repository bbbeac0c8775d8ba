"""FastAPI dependencies shared by the routers.

The application factory stores its settings, admission service and
handlers on ``app.state``; routes reach them through these dependencies so
tests can build an app around their own instances.
"""

from typing import Annotated

from fastapi import Depends, Request

from eventgate.app.api.handlers import EntryPointHandlers
from eventgate.app.core.config import Settings
from eventgate.app.services.admission import AdmissionService
from eventgate.app.services.webhook import WebhookAdmission


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_admission(request: Request) -> AdmissionService:
    return request.app.state.admission


def get_webhook_admission(request: Request) -> WebhookAdmission:
    return request.app.state.webhook_admission


def get_handlers(request: Request) -> EntryPointHandlers:
    return request.app.state.handlers


SettingsDep = Annotated[Settings, Depends(get_settings)]
AdmissionDep = Annotated[AdmissionService, Depends(get_admission)]
WebhookAdmissionDep = Annotated[WebhookAdmission, Depends(get_webhook_admission)]
HandlersDep = Annotated[EntryPointHandlers, Depends(get_handlers)]
