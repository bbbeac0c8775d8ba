"""Core utilities for the EventGate application."""

from eventgate.app.core.clock import (
    Clock,
    ManualClock,
    MonotonicClock,
    SystemClock,
    default_clock,
)
from eventgate.app.core.config import Settings, settings
from eventgate.app.core.logging import get_logger, setup_logging
from eventgate.app.core.security import (
    HmacVerificationResult,
    compute_hmac_signature,
    timing_safe_compare,
    verify_hmac_signature,
)

__all__ = [
    "Clock",
    "ManualClock",
    "MonotonicClock",
    "SystemClock",
    "default_clock",
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
    "HmacVerificationResult",
    "compute_hmac_signature",
    "timing_safe_compare",
    "verify_hmac_signature",
]
