"""Shared fixtures."""

import pytest

from eventgate.app.core.clock import ManualClock
from eventgate.app.core.config import Settings

START_MS = 1_700_000_000_000

APP_SECRET = "test-app-secret"
VERIFY_TOKEN = "test-verify-token"
SYNC_TOKEN = "test-sync-token"


@pytest.fixture
def clock():
    return ManualClock(START_MS)


@pytest.fixture
def test_settings():
    """Settings with secrets filled in and background sweeps disabled."""
    return Settings(
        facebook_app_secret=APP_SECRET,
        facebook_webhook_verify_token=VERIFY_TOKEN,
        sync_api_token=SYNC_TOKEN,
        rate_limit_cleanup_interval_seconds=0,
    )
