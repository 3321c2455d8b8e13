"""Rate limiter interfaces and value types.

Route handlers and services depend on ``AbstractRateLimiter`` rather than the
concrete token-bucket implementation, so the bucket store can later move to a
shared backend (e.g., Redis) without touching the HTTP layer.
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration of a single limiter instance.

    Attributes:
        interval_ms: Length of one refill window in milliseconds.
        max_requests: Bucket capacity, i.e. requests allowed per window.

    Raises:
        ValueError: If either field is not a positive integer.
    """

    interval_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if self.interval_ms < 1:
            raise ValueError("interval_ms must be >= 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")


@dataclass
class TokenBucket:
    """Admission credits tracked for one identifier."""

    tokens: int
    last_refill: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a ``check`` call.

    Attributes:
        success: Whether the request may proceed.
        remaining: Tokens left in the bucket after this call (0 when denied).
        reset: Epoch milliseconds at which the bucket is next refilled.
        limit: Capacity of the limiter that produced this result.
    """

    success: bool
    remaining: int
    reset: int
    limit: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Whole seconds until ``reset``, suitable for a Retry-After header."""
        return max(0, int(math.ceil((self.reset - now_ms) / 1000)))


class AbstractRateLimiter(ABC):
    """Interface for per-identifier admission control."""

    @property
    @abstractmethod
    def config(self) -> RateLimitConfig:
        """Return the immutable configuration of this limiter."""
        raise NotImplementedError

    def now_ms(self) -> int:
        """Current time in epoch milliseconds, as seen by this limiter."""
        return int(time.time() * 1000)

    @abstractmethod
    def check(self, identifier: str) -> RateLimitResult:
        """Spend one credit for ``identifier`` if one is available.

        Args:
            identifier: Opaque caller key (e.g., client IP). Empty string is
                a valid, distinct key.

        Returns:
            RateLimitResult describing the admission decision.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str) -> None:
        """Forget the bucket for ``identifier`` (no-op when absent)."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Forget every bucket."""
        raise NotImplementedError

    @abstractmethod
    def bucket_count(self) -> int:
        """Return the number of identifiers currently tracked."""
        raise NotImplementedError
