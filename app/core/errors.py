"""Application-level exception types.

Domain errors raised by services and dependencies. The exception handlers in
``app.core.exception_handlers`` translate them into HTTP responses with a
consistent JSON shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from app.adapters.rate_limit.base import RateLimitResult


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    scope: str
    available_scopes: list[str]
    limit: int
    remaining: int
    reset: int
    retry_after: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""


class UnknownRateLimitScopeError(NotFoundAppError):
    """Raised when no limiter is registered under the requested scope."""

    def __init__(self, scope: str, available: list[str]) -> None:
        super().__init__(
            code="unknown_rate_limit_scope",
            message=f"No rate limiter is configured for scope '{scope}'",
            details={"scope": scope, "available_scopes": available},
        )


class RateLimitExceededError(AppError):
    """Raised when a caller has no admission credits left.

    Carries the limiter result so the handler can emit ``Retry-After`` and
    ``X-RateLimit-*`` headers.
    """

    def __init__(self, scope: str, result: RateLimitResult, now_ms: int) -> None:
        self.result = result
        self.now_ms = now_ms
        super().__init__(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details={
                "scope": scope,
                "limit": result.limit,
                "remaining": result.remaining,
                "reset": result.reset,
                "retry_after": result.retry_after_seconds(now_ms),
            },
        )
