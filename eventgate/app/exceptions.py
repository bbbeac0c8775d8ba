"""Custom exceptions for the EventGate application."""

from typing import Dict, Optional


class EventGateException(Exception):
    """Base class for EventGate exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "EventGate error"):
        self.message = message
        super().__init__(message)


class RateLimitExceededError(EventGateException):
    """Raised when a caller has exhausted a rate limit or token bucket.

    Carries the Retry-After value and any X-RateLimit-* headers so the
    handler can reproduce them on the 429 response.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        retry_after: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        message: str = "Rate limit exceeded",
    ):
        self.retry_after = retry_after
        self.headers = headers or {}
        super().__init__(message)


class LockedOutError(RateLimitExceededError):
    """Raised when an identity is locked out by brute force protection.

    Maps to HTTP 429 Too Many Requests.
    """

    def __init__(self, retry_after: Optional[int] = None, message: str = "Too many requests"):
        super().__init__(retry_after=retry_after, message=message)


class AuthenticationError(EventGateException):
    """Raised when a bearer token is missing or wrong.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401

    def __init__(self, detail: str = "Unauthorized"):
        self.detail = detail
        super().__init__(detail)


class SignatureVerificationError(EventGateException):
    """Raised when a webhook signature is missing or does not verify.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401

    def __init__(self, detail: str = "Invalid signature"):
        self.detail = detail
        super().__init__(detail)


class InvalidPayloadError(EventGateException):
    """Raised when a request body or query fails parsing or validation.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, detail: str = "Invalid payload"):
        self.detail = detail
        super().__init__(detail)


class VerificationTokenError(EventGateException):
    """Raised when a webhook subscription handshake has the wrong verify token.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403

    def __init__(self, detail: str = "Invalid verify token"):
        self.detail = detail
        super().__init__(detail)


class PayloadTooLargeError(EventGateException):
    """Raised when a webhook body exceeds the configured size limit.

    Maps to HTTP 413 Payload Too Large.
    """
    status_code = 413

    def __init__(self, max_bytes: int, detail: str = "Payload too large"):
        self.max_bytes = max_bytes
        self.detail = detail
        super().__init__(detail)


class ConfigurationError(EventGateException):
    """Raised when a required secret is not configured.

    Maps to HTTP 500 Internal Server Error.
    """
    status_code = 500

    def __init__(self, detail: str = "Webhook secret not configured"):
        self.detail = detail
        super().__init__(detail)
