"""Time sources for the admission layer.

Every limiter reads "now" through a Clock so expiry logic can be driven
deterministically in tests. All values are milliseconds.
"""

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in milliseconds."""

    def now_ms(self) -> float:
        ...


class SystemClock:
    """Wall-clock time as epoch milliseconds.

    Subject to NTP adjustments; limiters clamp negative deltas so a
    backwards jump never produces negative refill or a bogus lockout.
    """

    def now_ms(self) -> float:
        return time.time() * 1000


class MonotonicClock:
    """Monotonic milliseconds, immune to wall-clock adjustments.

    Values are only meaningful relative to each other, so reset times
    derived from this clock must be turned into durations before they
    leave the process (see responses.seconds_until).
    """

    def now_ms(self) -> float:
        return time.monotonic() * 1000


class ManualClock:
    """Controllable clock for tests.

    Usage:
        clock = ManualClock(1_000_000)
        limiter = SlidingWindowRateLimiter(clock=clock)
        clock.advance(60_000)
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._lock = threading.Lock()

    def now_ms(self) -> float:
        with self._lock:
            return self._now

    def advance(self, ms: float) -> float:
        """Move the clock forward (or backward, for negative values)."""
        with self._lock:
            self._now += ms
            return self._now

    def set(self, ms: float) -> None:
        with self._lock:
            self._now = float(ms)


def default_clock(monotonic: bool = False) -> Clock:
    """Return the clock limiters use when none is injected."""
    return MonotonicClock() if monotonic else SystemClock()
