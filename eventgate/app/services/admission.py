"""Admission service.

Composes the sliding window limiter, the token bucket limiter, brute force
protection and webhook signature verification behind one object that the
HTTP layer talks to. Every check returns an AdmissionDecision; turning a
denial into a response is left to the caller.
"""

import logging
import math
import threading
from typing import Optional

from eventgate.app.core.clock import Clock, default_clock
from eventgate.app.core.config import Settings
from eventgate.app.core.logging import get_logger
from eventgate.app.core.security import HmacVerificationResult, verify_hmac_signature
from eventgate.app.middleware.rate_limit.brute_force import BruteForceProtection
from eventgate.app.middleware.rate_limit.models import AdmissionDecision, LockoutEntry
from eventgate.app.middleware.rate_limit.responses import DEFAULT_RETRY_AFTER, seconds_until
from eventgate.app.middleware.rate_limit.sliding_window import SlidingWindowRateLimiter
from eventgate.app.middleware.rate_limit.sweeper import PeriodicSweeper
from eventgate.app.middleware.rate_limit.token_bucket import DEFAULT_BUCKET, TokenBucketRateLimiter

# Rate limit names used by the deployment
GET_EVENTS_LIMIT = "get-events"
WEBHOOK_PAGE_LIMIT = "facebook-webhooks"
SYNC_EVENTS_BUCKET = "sync-events"

REASON_RATE_LIMITED = "rate_limited"
REASON_LOCKED_OUT = "locked_out"


class AdmissionService:
    """Single entry point for admission and trust checks.

    Usage:
        admission = AdmissionService.from_settings(settings)
        admission.start()
        decision = admission.check_rate_limit("get-events", client_ip)
        ...
        admission.stop()
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        app_secret: str = "",
        cleanup_interval: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the service with empty primitives.

        Args:
            clock: Time source shared by every primitive
            app_secret: Facebook app secret used for webhook signatures
            cleanup_interval: Seconds between background sweeps; None or 0
                disables all sweep threads
            logger: Logger shared by every primitive
        """
        self.clock = clock or default_clock()
        self._logger = logger or get_logger(__name__)
        self._app_secret = app_secret
        self._cleanup_interval = cleanup_interval
        self._sweeper: Optional[PeriodicSweeper] = None
        self._sweeper_lock = threading.Lock()

        # One admission-cleanup sweep covers every primitive
        self.sliding_window = SlidingWindowRateLimiter(
            clock=self.clock, cleanup_interval=None, logger=self._logger
        )
        self.token_bucket = TokenBucketRateLimiter(clock=self.clock, logger=self._logger)
        self.brute_force = BruteForceProtection(clock=self.clock, logger=self._logger)

    @classmethod
    def from_settings(cls, settings: Settings, clock: Optional[Clock] = None) -> "AdmissionService":
        """Build the service and register the deployment's named limits."""
        service = cls(
            clock=clock or default_clock(settings.rate_limit_monotonic_clock),
            app_secret=settings.facebook_app_secret,
            cleanup_interval=settings.rate_limit_cleanup_interval_seconds,
        )
        service.sliding_window.initialize(
            GET_EVENTS_LIMIT,
            settings.rate_limit_get_events_max_requests,
            settings.rate_limit_get_events_window_ms,
        )
        service.sliding_window.initialize(
            WEBHOOK_PAGE_LIMIT,
            settings.rate_limit_webhook_max_requests,
            settings.rate_limit_webhook_window_ms,
        )
        service.token_bucket.configure(
            capacity=settings.sync_bucket_capacity,
            refill_rate=settings.sync_bucket_refill_rate,
            name=SYNC_EVENTS_BUCKET,
        )
        service.brute_force.configure(
            max_attempts=settings.brute_force_max_attempts,
            lockout_ms=settings.brute_force_lockout_ms,
            window_ms=settings.brute_force_window_ms,
        )
        return service

    @property
    def app_secret_configured(self) -> bool:
        return bool(self._app_secret)

    def now_ms(self) -> float:
        return self.clock.now_ms()

    def start(self) -> None:
        """Start the background sweep over every primitive. Idempotent."""
        if not self._cleanup_interval:
            return
        with self._sweeper_lock:
            if self._sweeper is None:
                self._sweeper = PeriodicSweeper(
                    self._cleanup_interval, self.cleanup, name="admission-cleanup"
                )
            self._sweeper.start()

    def cleanup(self) -> int:
        """Sweep every primitive once. Returns the total entries removed."""
        return (
            self.sliding_window.cleanup()
            + self.token_bucket.cleanup()
            + self.brute_force.cleanup()
        )

    def stop(self) -> None:
        """Stop the sweep and drop per-client state.

        Named limits and the lockout policy are kept, so a later start()
        enforces them again.
        """
        with self._sweeper_lock:
            sweeper = self._sweeper
            self._sweeper = None
        if sweeper is not None:
            sweeper.stop()

        self.sliding_window.clear()
        self.token_bucket.clear()
        self.brute_force.clear()
        self._logger.debug("Admission service stopped")

    def destroy(self) -> None:
        """Stop the sweep and release all state, configuration included."""
        self.stop()
        self.sliding_window.destroy()
        self.token_bucket.destroy()
        self.brute_force.destroy()
        self._logger.debug("Admission service destroyed")

    def check_rate_limit(self, name: str, key: str) -> AdmissionDecision:
        """Sliding window check for (name, key).

        An uninitialized name is allowed without rate limit numbers.
        """
        allowed, status = self.sliding_window.check_with_status(name, key)
        if status is None:
            return AdmissionDecision(allowed=True)

        decision = AdmissionDecision(
            allowed=allowed,
            limit=status.limit,
            used=status.used,
            remaining=status.remaining,
            reset_at=status.reset_at,
        )
        if not allowed:
            decision.reason = REASON_RATE_LIMITED
            decision.retry_after = seconds_until(status.reset_at, self.now_ms())
            self._logger.info(
                f'Rate limit "{name}" denied request',
                extra={"limiter": name, "client_ip": key, "retry_after": decision.retry_after},
            )
        return decision

    def check_token_bucket(self, key: str, name: str = DEFAULT_BUCKET) -> AdmissionDecision:
        """Spend one token for key from the named bucket."""
        allowed, status = self.token_bucket.check_with_status(key, name)
        if status is None:
            return AdmissionDecision(allowed=True)

        capacity = int(status.capacity)
        remaining = int(math.floor(status.tokens))
        decision = AdmissionDecision(
            allowed=allowed,
            limit=capacity,
            used=capacity - remaining,
            remaining=remaining,
        )
        if status.refill_rate > 0:
            decision.reset_at = self.now_ms() + (status.capacity - status.tokens) / status.refill_rate

        if not allowed:
            decision.reason = REASON_RATE_LIMITED
            if status.refill_rate > 0:
                decision.retry_after = max(
                    1, math.ceil((1 - status.tokens) / status.refill_rate / 1000)
                )
            else:
                decision.retry_after = DEFAULT_RETRY_AFTER
            self._logger.info(
                f'Token bucket "{name}" denied request',
                extra={"limiter": name, "retry_after": decision.retry_after},
            )
        return decision

    def check_lockout(self, key: str) -> AdmissionDecision:
        """Deny while key is locked out by brute force protection."""
        status = self.brute_force.get_status(key)
        if not status.locked:
            return AdmissionDecision(
                allowed=True,
                limit=self.brute_force.max_attempts,
                used=status.attempts,
                remaining=status.attempts_remaining,
            )

        return AdmissionDecision(
            allowed=False,
            reason=REASON_LOCKED_OUT,
            limit=self.brute_force.max_attempts,
            used=status.attempts,
            remaining=0,
            reset_at=status.locked_until,
            retry_after=seconds_until(status.locked_until, self.now_ms()),
        )

    def record_auth_failure(self, key: str) -> LockoutEntry:
        return self.brute_force.record_failure(key)

    def record_auth_success(self, key: str) -> None:
        self.brute_force.reset(key)

    def verify_webhook_signature(
        self, raw_body: bytes, signature_header: Optional[str]
    ) -> HmacVerificationResult:
        """Verify an x-hub-signature-256 header against the raw request body."""
        return verify_hmac_signature(raw_body, signature_header or "", self._app_secret)
