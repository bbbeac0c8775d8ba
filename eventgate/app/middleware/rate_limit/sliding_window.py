"""Sliding window rate limiter.

Counts requests per (name, key) over a trailing window ending at "now".
Used for public endpoints that need per-client limiting, e.g. 100 requests
per minute per IP on the events API.
"""

import logging
import threading
from bisect import bisect_right, insort
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from eventgate.app.core.clock import Clock, SystemClock
from eventgate.app.core.logging import get_logger
from eventgate.app.middleware.rate_limit.models import (
    SlidingWindowBucket,
    SlidingWindowConfig,
    SlidingWindowStatus,
)
from eventgate.app.middleware.rate_limit.sweeper import PeriodicSweeper

DEFAULT_CLEANUP_INTERVAL = 60.0


def _prune(requests: List[float], cutoff: float) -> None:
    """Drop timestamps <= cutoff. The list is sorted, so this is a prefix trim."""
    idx = bisect_right(requests, cutoff)
    if idx:
        del requests[:idx]


def _status(
    config: SlidingWindowConfig, bucket: Optional[SlidingWindowBucket], now: float
) -> SlidingWindowStatus:
    used = 0
    reset_at = now
    if bucket is not None:
        idx = bisect_right(bucket.requests, now - config.window_ms)
        used = len(bucket.requests) - idx
        if used:
            reset_at = bucket.requests[idx] + config.window_ms

    return SlidingWindowStatus(
        used=used,
        limit=config.max_requests,
        remaining=max(0, config.max_requests - used),
        reset_at=reset_at,
    )


class SlidingWindowRateLimiter:
    """In-memory sliding window limiter with named configurations.

    Each name owns its own configuration and bucket set. A name that was
    never initialized fails open: the request is allowed and a warning is
    logged, so a deployment mistake cannot turn into an outage.

    Thread safety: the bucket map is guarded by a registry lock and every
    bucket has its own lock. The registry lock is always taken first.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        cleanup_interval: Optional[float] = DEFAULT_CLEANUP_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the limiter.

        Args:
            clock: Time source (defaults to wall-clock milliseconds)
            cleanup_interval: Seconds between background sweeps once started;
                None or 0 disables the sweep thread
            logger: Logger for warnings and debug output
        """
        self._clock = clock or SystemClock()
        self._logger = logger or get_logger(__name__)
        self._cleanup_interval = cleanup_interval
        self._configs: Dict[str, SlidingWindowConfig] = {}
        self._buckets: Dict[Tuple[str, str], SlidingWindowBucket] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[PeriodicSweeper] = None

    def initialize(self, name: str, max_requests: int, window_ms: float) -> None:
        """Register or overwrite the configuration for a rate limit name.

        Args:
            name: Rate limit name (e.g. "get-events")
            max_requests: Max requests allowed in the window
            window_ms: Window length in milliseconds
        """
        if max_requests < 0:
            raise ValueError("max_requests must not be negative")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")

        with self._lock:
            self._configs[name] = SlidingWindowConfig(max_requests=max_requests, window_ms=window_ms)

    def start(self) -> None:
        """Start the background cleanup sweep, if an interval is configured."""
        if not self._cleanup_interval:
            return
        with self._lock:
            if self._sweeper is None:
                self._sweeper = PeriodicSweeper(
                    self._cleanup_interval, self.cleanup, name="sliding-window-cleanup"
                )
            sweeper = self._sweeper
        sweeper.start()

    def stop(self) -> None:
        """Stop the background sweep, keeping buckets and configurations."""
        with self._lock:
            sweeper = self._sweeper
            self._sweeper = None
        # Stopped outside the registry lock: a running sweep needs that lock
        if sweeper is not None:
            sweeper.stop()

    def is_initialized(self, name: str) -> bool:
        with self._lock:
            return name in self._configs

    @contextmanager
    def _bucket(
        self, name: str, key: str, create: bool
    ) -> Iterator[Tuple[Optional[SlidingWindowConfig], Optional[SlidingWindowBucket]]]:
        """Yield the config and the locked bucket for (name, key)."""
        with self._lock:
            config = self._configs.get(name)
            bucket = self._buckets.get((name, key))
            if bucket is None and create and config is not None:
                bucket = SlidingWindowBucket(window_ms=config.window_ms)
                self._buckets[(name, key)] = bucket
            if bucket is not None:
                bucket.lock.acquire()
        try:
            yield config, bucket
        finally:
            if bucket is not None:
                bucket.lock.release()

    def check(self, name: str, key: str) -> bool:
        """Record one request for (name, key) and return whether it is allowed.

        Denied requests are not counted against the window. Stale
        timestamps are pruned on every call, allowed or not.
        """
        allowed, _ = self.check_with_status(name, key)
        return allowed

    def check_with_status(
        self, name: str, key: str
    ) -> Tuple[bool, Optional[SlidingWindowStatus]]:
        """Like check(), also returning usage as of this request.

        The status is read under the same bucket lock as the check, so it
        never includes requests from other callers. It is None when the
        name was never initialized.
        """
        with self._bucket(name, key, create=True) as (config, bucket):
            if config is None or bucket is None:
                self._logger.warning(
                    f'Rate limiter "{name}" not initialized; allowing request',
                    extra={"limiter": name},
                )
                return True, None

            now = self._clock.now_ms()
            bucket.window_ms = config.window_ms
            _prune(bucket.requests, now - config.window_ms)

            if len(bucket.requests) >= config.max_requests:
                self._logger.debug(
                    f'Rate limit exceeded for "{name}"',
                    extra={
                        "limiter": name,
                        "requests": len(bucket.requests),
                        "max_requests": config.max_requests,
                        "window_ms": config.window_ms,
                    },
                )
                return False, _status(config, bucket, now)

            insort(bucket.requests, now)
            return True, _status(config, bucket, now)

    def get_status(self, name: str, key: str) -> SlidingWindowStatus:
        """Return usage for (name, key) without mutating state."""
        with self._bucket(name, key, create=False) as (config, bucket):
            if config is None:
                return SlidingWindowStatus(used=0, limit=0, remaining=0, reset_at=0)
            return _status(config, bucket, self._clock.now_ms())

    def reset(self, name: str, key: str) -> None:
        """Clear the bucket for (name, key)."""
        with self._lock:
            bucket = self._buckets.get((name, key))
            if bucket is not None:
                # Same lock order as cleanup()
                with bucket.lock:
                    del self._buckets[(name, key)]

    def cleanup(self) -> int:
        """Prune every bucket and drop the empty ones.

        Returns:
            Number of buckets removed
        """
        removed = 0
        with self._lock:
            now = self._clock.now_ms()
            for bucket_key, bucket in list(self._buckets.items()):
                with bucket.lock:
                    _prune(bucket.requests, now - bucket.window_ms)
                    if not bucket.requests:
                        del self._buckets[bucket_key]
                        removed += 1

        if removed:
            self._logger.debug(f"Rate limiter cleanup: removed {removed} stale buckets")
        return removed

    def clear(self) -> None:
        """Drop every bucket, keeping the named configurations."""
        with self._lock:
            self._buckets.clear()

    def destroy(self) -> None:
        """Stop the background sweep and release all state."""
        self.stop()
        with self._lock:
            self._buckets.clear()
            self._configs.clear()

    @property
    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)


class NamedSlidingWindowLimiter:
    """A sliding window limiter bound to a single rate limit name."""

    def __init__(self, limiter: SlidingWindowRateLimiter, name: str):
        self.name = name
        self._limiter = limiter

    def check(self, key: str) -> bool:
        return self._limiter.check(self.name, key)

    def get_status(self, key: str) -> SlidingWindowStatus:
        return self._limiter.get_status(self.name, key)

    def reset(self, key: str) -> None:
        self._limiter.reset(self.name, key)

    def start(self) -> None:
        self._limiter.start()

    def destroy(self) -> None:
        self._limiter.destroy()


def create_sliding_window_limiter(
    name: str,
    max_requests: int,
    window_ms: float,
    clock: Optional[Clock] = None,
    cleanup_interval: Optional[float] = DEFAULT_CLEANUP_INTERVAL,
) -> NamedSlidingWindowLimiter:
    """Create a dedicated limiter with one initialized name.

    The background sweep is not running until start() is called.
    """
    limiter = SlidingWindowRateLimiter(clock=clock, cleanup_interval=cleanup_interval)
    limiter.initialize(name, max_requests, window_ms)
    return NamedSlidingWindowLimiter(limiter, name)
