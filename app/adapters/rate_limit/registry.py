"""Named limiter instances built once at application startup.

The registry is created by the app factory, stored on ``app.state`` and handed
to whichever code needs a limiter. Each scope owns an independent bucket store
and sweep thread.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Mapping

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitConfig
from app.adapters.rate_limit.token_bucket import TokenBucketRateLimiter
from app.core.config import RateLimitSettings
from app.core.errors import UnknownRateLimitScopeError

logger = logging.getLogger(__name__)

CHECKOUT_SCOPE = "checkout"
WEBHOOK_SCOPE = "webhook"
ADMIN_SCOPE = "admin"


class RateLimiterRegistry:
    """Mapping of scope name to limiter, with lifecycle helpers."""

    def __init__(self, limiters: Mapping[str, AbstractRateLimiter]) -> None:
        self._limiters: dict[str, AbstractRateLimiter] = dict(limiters)

    def __iter__(self) -> Iterator[tuple[str, AbstractRateLimiter]]:
        return iter(self._limiters.items())

    def __contains__(self, scope: object) -> bool:
        return scope in self._limiters

    def __len__(self) -> int:
        return len(self._limiters)

    def scopes(self) -> list[str]:
        return sorted(self._limiters)

    def get(self, scope: str) -> AbstractRateLimiter:
        """Return the limiter registered under ``scope``.

        Raises:
            UnknownRateLimitScopeError: If no limiter has that name.
        """
        try:
            return self._limiters[scope]
        except KeyError:
            raise UnknownRateLimitScopeError(scope, self.scopes()) from None

    def start_all(self) -> None:
        """Start the sweep thread of every limiter that has one."""
        for limiter in self._limiters.values():
            if isinstance(limiter, TokenBucketRateLimiter):
                limiter.start()

    def close_all(self) -> None:
        """Stop every sweep thread."""
        for limiter in self._limiters.values():
            if isinstance(limiter, TokenBucketRateLimiter):
                limiter.close()


def build_rate_limiters(
    rate_limit_settings: RateLimitSettings,
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimiterRegistry:
    """Create the checkout, webhook and admin limiters from configuration.

    Args:
        rate_limit_settings: Resolved ``RATE_LIMIT_*`` settings.
        clock: Time source shared by all limiters (UNIX seconds).

    Returns:
        Registry holding one independent limiter per scope.
    """
    cfg = rate_limit_settings
    configs = {
        CHECKOUT_SCOPE: RateLimitConfig(cfg.checkout_interval_ms, cfg.checkout_max_requests),
        WEBHOOK_SCOPE: RateLimitConfig(cfg.webhook_interval_ms, cfg.webhook_max_requests),
        ADMIN_SCOPE: RateLimitConfig(cfg.admin_interval_ms, cfg.admin_max_requests),
    }

    limiters = {
        scope: TokenBucketRateLimiter(
            config,
            name=scope,
            clock=clock,
            sweep_interval_seconds=cfg.sweep_interval_seconds,
            retention_seconds=cfg.retention_seconds,
        )
        for scope, config in configs.items()
    }

    logger.info(
        "rate_limiters.configured",
        extra={
            "scopes": {
                scope: {"interval_ms": c.interval_ms, "max_requests": c.max_requests}
                for scope, c in configs.items()
            },
        },
    )
    return RateLimiterRegistry(limiters)
