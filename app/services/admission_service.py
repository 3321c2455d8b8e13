"""Admission decisions for storefront callers.

Thin service over the limiter registry used by route handlers and the
rate-limit dependency: it resolves the scope, performs the check, logs the
outcome with a hashed identifier and turns a denial into a domain error.
"""

from __future__ import annotations

import logging
from typing import Any

from app.adapters.rate_limit.base import RateLimitResult
from app.adapters.rate_limit.registry import RateLimiterRegistry
from app.core.errors import RateLimitExceededError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)


class AdmissionService:
    """Check, reset and inspect the named limiters."""

    def __init__(self, registry: RateLimiterRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> RateLimiterRegistry:
        return self._registry

    def admit(self, scope: str, identifier: str) -> RateLimitResult:
        """Spend one credit for ``identifier`` under ``scope``.

        Args:
            scope: Limiter name (e.g., "checkout").
            identifier: Caller key, usually the client IP.

        Returns:
            RateLimitResult of an allowed request.

        Raises:
            UnknownRateLimitScopeError: If ``scope`` is not registered.
            RateLimitExceededError: If the caller has no credits left.
        """
        limiter = self._registry.get(scope)
        result = limiter.check(identifier)

        log_extra = {
            "scope": scope,
            "identifier_hash": hash_identifier(identifier),
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_ms": result.reset,
        }

        if result.success:
            logger.debug("admission.allowed", extra=log_extra)
            return result

        now_ms = limiter.now_ms()
        logger.warning(
            "admission.denied",
            extra={**log_extra, "retry_after_s": result.retry_after_seconds(now_ms)},
        )
        raise RateLimitExceededError(scope, result, now_ms)

    def reset(self, scope: str, identifier: str) -> None:
        self._registry.get(scope).reset(identifier)
        logger.info(
            "admission.bucket_reset",
            extra={"scope": scope, "identifier_hash": hash_identifier(identifier)},
        )

    def clear(self, scope: str) -> int:
        """Drop every bucket of ``scope`` and return how many were tracked."""
        limiter = self._registry.get(scope)
        dropped = limiter.bucket_count()
        limiter.clear()
        logger.info("admission.buckets_cleared", extra={"scope": scope, "dropped": dropped})
        return dropped

    def describe(self, scope: str) -> dict[str, Any]:
        limiter = self._registry.get(scope)
        return {
            "scope": scope,
            "interval_ms": limiter.config.interval_ms,
            "max_requests": limiter.config.max_requests,
            "buckets": limiter.bucket_count(),
        }
