"""In-memory token-bucket rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the read-modify-write of every bucket.
- Buckets are refilled in whole windows. A refill moves ``last_refill`` to the
  current time rather than to the boundary of the last completed window, so
  partial progress towards the next window restarts on every refill.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitConfig,
    RateLimitResult,
    TokenBucket,
)

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60
DEFAULT_RETENTION_SECONDS = 10 * 60


class TokenBucketRateLimiter(AbstractRateLimiter):
    """Per-identifier token buckets with a background sweep of idle entries.

    Each instance owns its bucket store and its sweep thread; instances never
    share state. The sweep thread only runs between ``start()`` and
    ``close()`` (or inside a ``with`` block).
    """

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        """Initialize the limiter.

        Args:
            config: Window length and capacity.
            name: Label used in logs (e.g., "checkout").
            clock: Time source returning UNIX time in seconds.
            sweep_interval_seconds: Period of the background sweep.
            retention_seconds: Idle time after which a bucket is evicted.

        Raises:
            ValueError: If the sweep interval or retention is not positive.
        """
        if sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")

        self._config = config
        self._name = name
        self._clock = clock
        self._sweep_interval_seconds = sweep_interval_seconds
        self._retention_ms = int(retention_seconds * 1000)

        self._lock = threading.RLock()
        self._buckets: dict[str, TokenBucket] = {}

        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TokenBucketRateLimiter(name={self._name!r}, "
            f"interval_ms={self._config.interval_ms}, "
            f"max_requests={self._config.max_requests}, "
            f"buckets={len(self._buckets)})"
        )

    def __enter__(self) -> TokenBucketRateLimiter:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_sweeping(self) -> bool:
        """Whether the background sweep thread is alive."""
        sweeper = self._sweeper
        return sweeper is not None and sweeper.is_alive()

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def check(self, identifier: str) -> RateLimitResult:
        """Admit or deny one request for ``identifier``.

        The first request from an unseen identifier always succeeds and
        leaves ``max_requests - 1`` tokens. Later requests first credit
        ``max_requests`` tokens per whole elapsed window (capped at capacity)
        and then spend one token if any is left.

        Args:
            identifier: Caller key. Empty string is a valid key.

        Returns:
            RateLimitResult with the decision, remaining tokens and the
            epoch-millisecond reset time.
        """
        interval = self._config.interval_ms
        capacity = self._config.max_requests

        with self._lock:
            now = self.now_ms()
            bucket = self._buckets.get(identifier)

            if bucket is None:
                bucket = TokenBucket(tokens=capacity - 1, last_refill=now)
                self._buckets[identifier] = bucket
                return RateLimitResult(
                    success=True,
                    remaining=bucket.tokens,
                    reset=now + interval,
                    limit=capacity,
                )

            # Floor division: a clock step backwards gives windows <= 0.
            windows = (now - bucket.last_refill) // interval
            if windows > 0:
                bucket.tokens = min(capacity, bucket.tokens + windows * capacity)
                bucket.last_refill = now

            reset_at = bucket.last_refill + interval

            if bucket.tokens > 0:
                bucket.tokens -= 1
                return RateLimitResult(
                    success=True,
                    remaining=bucket.tokens,
                    reset=reset_at,
                    limit=capacity,
                )

            return RateLimitResult(
                success=False,
                remaining=0,
                reset=reset_at,
                limit=capacity,
            )

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._buckets.pop(identifier, None)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    def sweep(self, now_ms: int | None = None) -> int:
        """Evict buckets idle for longer than the retention window.

        Keys are snapshotted first and each candidate is re-checked under the
        lock before deletion, so ``check`` calls for other identifiers are
        never blocked for the duration of the scan.

        Args:
            now_ms: Reference time in epoch milliseconds (defaults to clock).

        Returns:
            Number of buckets removed.
        """
        now = self.now_ms() if now_ms is None else now_ms

        with self._lock:
            snapshot = list(self._buckets.items())

        candidates = [
            key for key, bucket in snapshot
            if now - bucket.last_refill > self._retention_ms
        ]

        removed = 0
        for key in candidates:
            with self._lock:
                bucket = self._buckets.get(key)
                if bucket is not None and now - bucket.last_refill > self._retention_ms:
                    del self._buckets[key]
                    removed += 1

        logger.debug(
            "bucket_sweep.completed",
            extra={
                "limiter": self._name,
                "scanned": len(snapshot),
                "removed": removed,
            },
        )
        return removed

    def start(self) -> None:
        """Start the background sweep thread (idempotent)."""
        with self._lifecycle_lock:
            if self.is_sweeping:
                return
            self._stop_event = threading.Event()
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(self._stop_event,),
                name=f"rate-limit-sweep-{self._name}",
                daemon=True,
            )
            self._sweeper.start()

        logger.info(
            "bucket_sweep.started",
            extra={
                "limiter": self._name,
                "sweep_interval_s": self._sweep_interval_seconds,
                "retention_ms": self._retention_ms,
            },
        )

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the sweep thread and wait for it to exit (idempotent).

        Buckets are kept; ``check`` keeps working after close.
        """
        with self._lifecycle_lock:
            sweeper = self._sweeper
            self._stop_event.set()
            self._sweeper = None

        if sweeper is not None:
            sweeper.join(timeout)
            logger.info("bucket_sweep.stopped", extra={"limiter": self._name})

    def _sweep_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._sweep_interval_seconds):
            self._sweep_safe()

    def _sweep_safe(self) -> None:
        # Keep the thread alive; the next period retries.
        try:
            self.sweep()
        except Exception:
            logger.exception("bucket_sweep.failed", extra={"limiter": self._name})
