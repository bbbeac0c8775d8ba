"""Tests for the admission service."""

import threading
from unittest.mock import Mock

import pytest

from eventgate.app.core.clock import MonotonicClock, SystemClock
from eventgate.app.core.config import MS_PER_DAY
from eventgate.app.core.security import compute_hmac_signature
from eventgate.app.services.admission import (
    GET_EVENTS_LIMIT,
    REASON_LOCKED_OUT,
    REASON_RATE_LIMITED,
    SYNC_EVENTS_BUCKET,
    WEBHOOK_PAGE_LIMIT,
    AdmissionService,
)


@pytest.fixture
def admission(test_settings, clock):
    service = AdmissionService.from_settings(test_settings, clock=clock)
    yield service
    service.destroy()


class TestFromSettings:
    """Building the service from Settings."""

    def test_registers_deployment_limits(self, admission):
        assert admission.sliding_window.is_initialized(GET_EVENTS_LIMIT)
        assert admission.sliding_window.is_initialized(WEBHOOK_PAGE_LIMIT)
        assert admission.token_bucket.get_status("any", SYNC_EVENTS_BUCKET).capacity == 10
        assert admission.brute_force.max_attempts == 5
        assert admission.app_secret_configured is True

    def test_clock_selection(self, test_settings):
        service = AdmissionService.from_settings(test_settings)
        assert isinstance(service.clock, SystemClock)
        service.destroy()

        test_settings.rate_limit_monotonic_clock = True
        service = AdmissionService.from_settings(test_settings)
        assert isinstance(service.clock, MonotonicClock)
        service.destroy()


class TestCheckRateLimit:
    """Sliding window decisions."""

    def test_allowed_decision_carries_usage(self, admission, clock):
        decision = admission.check_rate_limit(GET_EVENTS_LIMIT, "1.2.3.4")

        assert decision.allowed is True
        assert decision.reason is None
        assert (decision.limit, decision.used, decision.remaining) == (100, 1, 99)
        assert decision.reset_at == clock.now_ms() + 60_000
        assert decision.retry_after is None

    def test_denied_decision(self, admission, clock):
        """Test that the 101st request in a minute is denied with retry_after."""
        for _ in range(100):
            admission.check_rate_limit(GET_EVENTS_LIMIT, "1.2.3.4")
        clock.advance(15_000)

        decision = admission.check_rate_limit(GET_EVENTS_LIMIT, "1.2.3.4")
        assert decision.allowed is False
        assert decision.reason == REASON_RATE_LIMITED
        assert decision.remaining == 0
        assert decision.retry_after == 45

    def test_webhook_page_throttle(self, admission, clock):
        """Test one delivery per page per second."""
        assert admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-1").allowed is True
        assert admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-1").allowed is False
        assert admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-2").allowed is True

        clock.advance(1000)
        assert admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-1").allowed is True

    def test_uninitialized_name_allows_without_numbers(self, admission):
        decision = admission.check_rate_limit("not-configured", "client")

        assert decision.allowed is True
        assert decision.limit is None
        assert decision.remaining is None


class TestCheckTokenBucket:
    """Token bucket decisions."""

    def test_sync_budget(self, admission):
        """Test 10 syncs allowed, the 11th denied until a token refills."""
        decisions = [admission.check_token_bucket("token-hash", SYNC_EVENTS_BUCKET) for _ in range(10)]
        assert all(d.allowed for d in decisions)
        assert (decisions[-1].limit, decisions[-1].used, decisions[-1].remaining) == (10, 10, 0)

        denied = admission.check_token_bucket("token-hash", SYNC_EVENTS_BUCKET)
        assert denied.allowed is False
        assert denied.reason == REASON_RATE_LIMITED
        # One token per 2.4 hours
        assert denied.retry_after == pytest.approx(MS_PER_DAY / 10 / 1000, abs=1)

    def test_reset_at_is_time_to_full(self, admission, clock):
        decision = admission.check_token_bucket("token-hash", SYNC_EVENTS_BUCKET)
        assert decision.reset_at == pytest.approx(clock.now_ms() + MS_PER_DAY / 10)

    def test_unconfigured_bucket_allows_without_numbers(self, admission):
        decision = admission.check_token_bucket("key", "not-configured")
        assert decision.allowed is True
        assert decision.limit is None

    def test_zero_refill_uses_default_retry_after(self, admission):
        admission.token_bucket.configure(capacity=1, refill_rate=0, name="fixed")
        admission.check_token_bucket("key", "fixed")

        denied = admission.check_token_bucket("key", "fixed")
        assert denied.allowed is False
        assert denied.retry_after == 60


class TestLockout:
    """Brute force decisions."""

    def test_lockout_flow(self, admission, clock):
        """Test lockout after five failures and its expiry after 15 minutes."""
        for _ in range(4):
            admission.record_auth_failure("client")
        assert admission.check_lockout("client").allowed is True

        entry = admission.record_auth_failure("client")
        assert entry.attempts == 5

        decision = admission.check_lockout("client")
        assert decision.allowed is False
        assert decision.reason == REASON_LOCKED_OUT
        assert decision.retry_after == 15 * 60

        clock.advance(15 * 60 * 1000)
        assert admission.check_lockout("client").allowed is True

    def test_success_clears_failures(self, admission):
        for _ in range(4):
            admission.record_auth_failure("client")
        admission.record_auth_success("client")

        decision = admission.check_lockout("client")
        assert decision.used == 0
        assert decision.remaining == 5


class TestWebhookSignature:
    """Signature verification through the service."""

    def test_verify(self, admission, test_settings):
        body = b'{"object":"page","entry":[]}'
        secret = test_settings.facebook_app_secret

        assert admission.verify_webhook_signature(body, compute_hmac_signature(body, secret)).valid
        assert not admission.verify_webhook_signature(body, compute_hmac_signature(body, "wrong")).valid
        assert admission.verify_webhook_signature(body, None).error == "Missing signature"

    def test_missing_secret(self, clock):
        service = AdmissionService(clock=clock)

        assert service.app_secret_configured is False
        result = service.verify_webhook_signature(b"{}", "sha256=" + "0" * 64)
        assert result.error == "Missing secret"


class TestLifecycle:
    """Background sweep and teardown."""

    def test_cleanup_sweeps_every_primitive(self, admission, clock):
        admission.check_rate_limit(GET_EVENTS_LIMIT, "client")
        admission.check_token_bucket("token", SYNC_EVENTS_BUCKET)
        admission.record_auth_failure("client")

        clock.advance(2 * MS_PER_DAY)
        assert admission.cleanup() == 3

    def test_start_and_destroy(self, test_settings, clock):
        test_settings.rate_limit_cleanup_interval_seconds = 0.01
        service = AdmissionService.from_settings(test_settings, clock=clock)
        service.start()
        service.start()  # idempotent

        service.check_rate_limit(GET_EVENTS_LIMIT, "client")
        service.destroy()

        assert service.sliding_window.bucket_count == 0
        assert service.sliding_window.is_initialized(GET_EVENTS_LIMIT) is False

    def test_construction_starts_no_thread(self, test_settings, clock):
        test_settings.rate_limit_cleanup_interval_seconds = 0.01
        service = AdmissionService.from_settings(test_settings, clock=clock)

        names = [t.name for t in threading.enumerate()]
        assert "admission-cleanup" not in names
        assert "sliding-window-cleanup" not in names
        service.destroy()

    def test_start_runs_one_sweep_for_everything(self, test_settings, clock):
        test_settings.rate_limit_cleanup_interval_seconds = 0.01
        service = AdmissionService.from_settings(test_settings, clock=clock)
        service.start()

        names = [t.name for t in threading.enumerate()]
        assert names.count("admission-cleanup") == 1
        assert "sliding-window-cleanup" not in names
        service.destroy()
        assert "admission-cleanup" not in [t.name for t in threading.enumerate()]

    def test_stop_keeps_named_limits(self, admission):
        """Test that limits are still enforced after a stop/start cycle."""
        admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-1")
        admission.record_auth_failure("client")
        admission.stop()

        assert admission.brute_force.get_status("client").attempts == 0
        admission.start()
        assert admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-1").allowed is True
        assert admission.check_rate_limit(WEBHOOK_PAGE_LIMIT, "page-1").allowed is False
        assert admission.check_token_bucket("token", SYNC_EVENTS_BUCKET).limit == 10


class TestDecisionConsistency:
    """Decision numbers come from the check itself."""

    def test_rate_limit_does_not_reread_status(self, admission):
        admission.sliding_window.get_status = Mock(side_effect=AssertionError("second read"))

        decision = admission.check_rate_limit(GET_EVENTS_LIMIT, "client")
        assert decision.used == 1

    def test_token_bucket_does_not_reread_status(self, admission):
        admission.token_bucket.get_status = Mock(side_effect=AssertionError("second read"))

        decision = admission.check_token_bucket("token", SYNC_EVENTS_BUCKET)
        assert (decision.used, decision.remaining) == (1, 9)
