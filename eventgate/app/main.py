from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from eventgate import __version__
from eventgate.app.api.events import router as events_router
from eventgate.app.api.handlers import EntryPointHandlers
from eventgate.app.api.oauth import router as oauth_router
from eventgate.app.api.sync import router as sync_router
from eventgate.app.api.webhooks import router as webhooks_router
from eventgate.app.core.config import Settings
from eventgate.app.core.config import settings as default_settings
from eventgate.app.core.logging import get_logger, setup_logging
from eventgate.app.exceptions import EventGateException, RateLimitExceededError
from eventgate.app.middleware.rate_limit import RateLimitMiddleware
from eventgate.app.middleware.rate_limit.responses import rate_limit_exceeded_response
from eventgate.app.middleware.request_id import RequestIdMiddleware, get_request_id
from eventgate.app.services.admission import GET_EVENTS_LIMIT, AdmissionService
from eventgate.app.services.webhook import WebhookAdmission

# Path prefix -> sliding window name applied by RateLimitMiddleware
RATE_LIMIT_RULES = {"/api/events": GET_EVENTS_LIMIT}


def create_app(
    settings: Optional[Settings] = None,
    admission: Optional[AdmissionService] = None,
    handlers: Optional[EntryPointHandlers] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (defaults to the environment)
        admission: Admission service (defaults to one built from settings)
        handlers: Downstream handlers (defaults log and acknowledge)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or default_settings
    admission = admission or AdmissionService.from_settings(settings)
    handlers = handlers or EntryPointHandlers()

    # Setup logging
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the admission sweep on startup, stop it on shutdown."""
        admission.start()
        logger.info(
            "Application startup complete",
            extra={
                "webhook_secret_configured": admission.app_secret_configured,
                "debug_mode": settings.debug,
            },
        )

        yield

        admission.stop()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="EventGate",
        description="Request admission and trust layer for the Facebook event aggregator",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.admission = admission
    app.state.webhook_admission = WebhookAdmission(admission)
    app.state.handlers = handlers

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(RateLimitMiddleware, admission=admission, rules=RATE_LIMIT_RULES)

    # Request ID middleware (outermost, so rate limit logs carry the ID)
    app.add_middleware(RequestIdMiddleware)

    # Include routers
    app.include_router(webhooks_router)
    app.include_router(sync_router)
    app.include_router(oauth_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": __version__,
            "webhook_secret_configured": admission.app_secret_configured,
        }

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        """Handle RateLimitExceededError (and LockedOutError) with a 429 response."""
        return rate_limit_exceeded_response(exc.retry_after, exc.headers, error=exc.message)

    @app.exception_handler(EventGateException)
    async def eventgate_error_handler(request: Request, exc: EventGateException) -> JSONResponse:
        """Handle the remaining EventGate exceptions as {"error": message}."""
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; debug mode adds the
        exception message and type.
        """
        request_id = get_request_id(request)

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        content = {"error": "Internal server error", "request_id": request_id}
        if settings.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
