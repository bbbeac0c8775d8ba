"""Brute force protection.

Tracks failed attempts per identity (client IP, OAuth state, account id)
and locks the identity out once a threshold is reached. Example: 5 failed
OAuth callbacks lock a client out for 15 minutes.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, Optional

from eventgate.app.core.clock import Clock, SystemClock
from eventgate.app.core.logging import get_logger
from eventgate.app.middleware.rate_limit.models import LockoutEntry, LockoutStatus

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LOCKOUT_MS = 15 * 60 * 1000

# Unlocked entries this long past their relevance are dropped by cleanup()
STALE_GRACE_MS = 60 * 60 * 1000


class BruteForceProtection:
    """Failure-counting lockout tracker.

    An identity is locked while attempts >= max_attempts and the lockout
    has not expired. Expiry does not clear the counter by itself; the next
    recorded failure after expiry starts a fresh count at 1.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout_ms: float = DEFAULT_LOCKOUT_MS,
        window_ms: Optional[float] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize brute force protection.

        Args:
            max_attempts: Failed attempts before lockout
            lockout_ms: How long a lockout lasts
            window_ms: Optional attempt window; failures older than this
                (while not locked) no longer count
            clock: Time source (defaults to wall-clock milliseconds)
            logger: Logger for lockout warnings
        """
        self._clock = clock or SystemClock()
        self._logger = logger or get_logger(__name__)
        self._entries: Dict[str, LockoutEntry] = {}
        self._lock = threading.Lock()
        self._max_attempts = DEFAULT_MAX_ATTEMPTS
        self._lockout_ms: float = DEFAULT_LOCKOUT_MS
        self._window_ms: Optional[float] = None
        self.configure(max_attempts=max_attempts, lockout_ms=lockout_ms, window_ms=window_ms)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def lockout_ms(self) -> float:
        return self._lockout_ms

    def configure(
        self,
        max_attempts: Optional[int] = None,
        lockout_ms: Optional[float] = None,
        window_ms: Optional[float] = None,
    ) -> None:
        """Update the global policy. Omitted values keep their current setting."""
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if lockout_ms is not None and lockout_ms <= 0:
            raise ValueError("lockout_ms must be positive")
        if window_ms is not None and window_ms <= 0:
            raise ValueError("window_ms must be positive")

        with self._lock:
            if max_attempts is not None:
                self._max_attempts = max_attempts
            if lockout_ms is not None:
                self._lockout_ms = lockout_ms
            if window_ms is not None:
                self._window_ms = window_ms

    def _lock_start(self, entry: LockoutEntry) -> float:
        return entry.locked_at if entry.locked_at is not None else entry.first_failure_at

    def _is_locked(self, entry: LockoutEntry, now: float) -> bool:
        return (
            entry.attempts >= self._max_attempts
            and now < self._lock_start(entry) + self._lockout_ms
        )

    def _lock_expired(self, entry: LockoutEntry, now: float) -> bool:
        return (
            entry.attempts >= self._max_attempts
            and now >= self._lock_start(entry) + self._lockout_ms
        )

    def _window_expired(self, entry: LockoutEntry, now: float) -> bool:
        return (
            self._window_ms is not None
            and entry.attempts < self._max_attempts
            and now - entry.first_failure_at > self._window_ms
        )

    def record_failure(self, key: str) -> LockoutEntry:
        """Record a failed attempt for key.

        Returns:
            A copy of the updated entry
        """
        with self._lock:
            now = self._clock.now_ms()
            entry = self._entries.get(key)

            if entry is None or self._lock_expired(entry, now) or self._window_expired(entry, now):
                entry = LockoutEntry(attempts=1, first_failure_at=now)
                self._entries[key] = entry
            else:
                entry.attempts += 1

            if entry.attempts >= self._max_attempts and entry.locked_at is None:
                entry.locked_at = now
                self._logger.warning(
                    "Brute force protection triggered",
                    extra={
                        "identity": key,
                        "attempts": entry.attempts,
                        "lockout_ms": self._lockout_ms,
                    },
                )

            return replace(entry)

    def is_locked(self, key: str) -> bool:
        """Return True while key is locked out. Never mutates state."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            return self._is_locked(entry, self._clock.now_ms())

    def get_status(self, key: str) -> LockoutStatus:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return LockoutStatus(
                    locked=False, attempts=0, attempts_remaining=self._max_attempts
                )

            locked_until = None
            if entry.attempts >= self._max_attempts:
                locked_until = self._lock_start(entry) + self._lockout_ms

            return LockoutStatus(
                locked=self._is_locked(entry, self._clock.now_ms()),
                attempts=entry.attempts,
                attempts_remaining=max(0, self._max_attempts - entry.attempts),
                locked_until=locked_until,
            )

    def reset(self, key: str) -> None:
        """Clear the entry for key, e.g. after a successful authentication."""
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired lockouts and stale unlocked entries.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._lock:
            now = self._clock.now_ms()
            horizon = (self._window_ms or self._lockout_ms) + STALE_GRACE_MS
            for key, entry in list(self._entries.items()):
                if entry.attempts >= self._max_attempts:
                    stale = self._lock_expired(entry, now)
                else:
                    stale = now - entry.first_failure_at > horizon
                if stale:
                    del self._entries[key]
                    removed += 1

        if removed:
            self._logger.debug(f"Brute force protection cleanup: removed {removed} entries")
        return removed

    def clear(self) -> None:
        """Drop every entry, keeping the lockout policy."""
        with self._lock:
            self._entries.clear()

    def destroy(self) -> None:
        self.clear()
