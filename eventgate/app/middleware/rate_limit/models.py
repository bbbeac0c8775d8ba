"""Rate limiting data models.

This module contains dataclasses for limiter state and results.
"""

import threading
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class SlidingWindowConfig:
    """Configuration registered for one rate limit name."""
    max_requests: int
    window_ms: float


@dataclass
class SlidingWindowBucket:
    """Request timestamps for one (name, key), oldest first."""
    window_ms: float
    requests: List[float] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass
class SlidingWindowStatus:
    """Read-only view of a sliding window bucket."""
    used: int
    limit: int
    remaining: int
    reset_at: float


@dataclass
class TokenBucketConfig:
    """Capacity and refill rate (tokens per millisecond) for one name."""
    capacity: float
    refill_rate: float


@dataclass
class TokenBucketState:
    """Token bucket state for one (name, key)."""
    tokens: float
    last_refill: float
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass
class TokenBucketStatus:
    """Read-only view of a token bucket, refilled as of now."""
    tokens: float
    capacity: float
    last_refill: float
    refill_rate: float = 0.0


@dataclass
class LockoutEntry:
    """Failure counter for one identity key."""
    attempts: int
    first_failure_at: float
    locked_at: Optional[float] = None


@dataclass
class LockoutStatus:
    """Read-only view of a lockout entry."""
    locked: bool
    attempts: int
    attempts_remaining: int
    locked_until: Optional[float] = None


@dataclass
class AdmissionDecision:
    """Result of an admission check.

    Denials are ordinary values so callers can pick the response code and
    headers; they are not raised.
    """
    allowed: bool
    reason: Optional[str] = None
    limit: Optional[int] = None
    used: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[float] = None
    retry_after: Optional[int] = None
