"""Token bucket rate limiter.

Credits refill continuously at a fixed rate and each admitted request
spends one. Used where bursty-but-bounded traffic is expected, e.g. the
manual sync trigger (10 calls per day per token).
"""

import logging
import threading
from typing import Dict, Optional, Tuple

from eventgate.app.core.clock import Clock, SystemClock
from eventgate.app.core.logging import get_logger
from eventgate.app.middleware.rate_limit.models import (
    TokenBucketConfig,
    TokenBucketState,
    TokenBucketStatus,
)

DEFAULT_BUCKET = "default"


def _refilled(state: TokenBucketState, config: TokenBucketConfig, now: float) -> float:
    """Tokens in the bucket as of ``now``, clamped to [0, capacity]."""
    elapsed = max(0.0, now - state.last_refill)
    tokens = state.tokens + elapsed * config.refill_rate
    return max(0.0, min(config.capacity, tokens))


class TokenBucketRateLimiter:
    """In-memory token bucket limiter.

    Buckets are keyed by (name, key); each name carries its own capacity and
    refill rate, with DEFAULT_BUCKET used when no name is given. New buckets
    start full. Checking a name that has not been configured fails open
    with a logged warning.
    """

    def __init__(self, clock: Optional[Clock] = None, logger: Optional[logging.Logger] = None):
        self._clock = clock or SystemClock()
        self._logger = logger or get_logger(__name__)
        self._configs: Dict[str, TokenBucketConfig] = {}
        self._buckets: Dict[Tuple[str, str], TokenBucketState] = {}
        self._lock = threading.Lock()

    def configure(self, capacity: float, refill_rate: float, name: str = DEFAULT_BUCKET) -> None:
        """Set bucket parameters for a name.

        Args:
            capacity: Maximum tokens a bucket can hold
            refill_rate: Tokens added per millisecond
            name: Bucket name (defaults to DEFAULT_BUCKET)
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_rate < 0:
            raise ValueError("refill_rate must not be negative")

        with self._lock:
            self._configs[name] = TokenBucketConfig(capacity=float(capacity), refill_rate=refill_rate)
            # Existing buckets must respect a lowered capacity
            for (bucket_name, _), state in self._buckets.items():
                if bucket_name == name:
                    with state.lock:
                        state.tokens = min(state.tokens, float(capacity))

    def check(self, key: str, name: str = DEFAULT_BUCKET) -> bool:
        """Refill, then spend one token for key if available.

        Returns:
            True if a token was spent, False if the bucket is empty
        """
        allowed, _ = self.check_with_status(key, name)
        return allowed

    def check_with_status(
        self, key: str, name: str = DEFAULT_BUCKET
    ) -> Tuple[bool, Optional[TokenBucketStatus]]:
        """Like check(), also returning the bucket as left by this request.

        The status is None when the name was never configured.
        """
        with self._lock:
            config = self._configs.get(name)
            if config is None:
                state = None
            else:
                now = self._clock.now_ms()
                state = self._buckets.get((name, key))
                if state is None:
                    state = TokenBucketState(tokens=config.capacity, last_refill=now)
                    self._buckets[(name, key)] = state
                state.lock.acquire()

        if config is None or state is None:
            self._logger.warning(
                f'Token bucket "{name}" not configured; allowing request',
                extra={"limiter": name},
            )
            return True, None

        try:
            now = self._clock.now_ms()
            state.tokens = _refilled(state, config, now)
            state.last_refill = max(state.last_refill, now)

            allowed = state.tokens >= 1
            if allowed:
                state.tokens -= 1
            else:
                self._logger.debug(
                    f'Token bucket "{name}" exhausted',
                    extra={"limiter": name, "tokens_available": state.tokens},
                )

            return allowed, TokenBucketStatus(
                tokens=state.tokens,
                capacity=config.capacity,
                last_refill=state.last_refill,
                refill_rate=config.refill_rate,
            )
        finally:
            state.lock.release()

    def get_status(self, key: str, name: str = DEFAULT_BUCKET) -> TokenBucketStatus:
        """Return the bucket refilled as of now, without persisting the refill."""
        with self._lock:
            config = self._configs.get(name)
            now = self._clock.now_ms()
            if config is None:
                return TokenBucketStatus(tokens=0, capacity=0, last_refill=now)

            state = self._buckets.get((name, key))
            if state is None:
                return TokenBucketStatus(
                    tokens=config.capacity,
                    capacity=config.capacity,
                    last_refill=now,
                    refill_rate=config.refill_rate,
                )

            with state.lock:
                return TokenBucketStatus(
                    tokens=_refilled(state, config, now),
                    capacity=config.capacity,
                    last_refill=state.last_refill,
                    refill_rate=config.refill_rate,
                )

    def reset(self, key: str, name: str = DEFAULT_BUCKET) -> None:
        """Restore the bucket for key to full capacity."""
        with self._lock:
            config = self._configs.get(name)
            if config is None:
                self._buckets.pop((name, key), None)
                return
            self._buckets[(name, key)] = TokenBucketState(
                tokens=config.capacity, last_refill=self._clock.now_ms()
            )

    def cleanup(self) -> int:
        """Drop buckets that have refilled to capacity.

        A full bucket behaves exactly like a missing one, so removing it
        reclaims memory without changing any decision.

        Returns:
            Number of buckets removed
        """
        removed = 0
        with self._lock:
            now = self._clock.now_ms()
            for bucket_key, state in list(self._buckets.items()):
                config = self._configs.get(bucket_key[0])
                with state.lock:
                    if config is None or _refilled(state, config, now) >= config.capacity:
                        del self._buckets[bucket_key]
                        removed += 1

        if removed:
            self._logger.debug(f"Token bucket cleanup: removed {removed} full buckets")
        return removed

    def clear(self) -> None:
        """Drop every bucket, keeping the named configurations."""
        with self._lock:
            self._buckets.clear()

    def destroy(self) -> None:
        """Release all state."""
        with self._lock:
            self._buckets.clear()
            self._configs.clear()

    @property
    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)
