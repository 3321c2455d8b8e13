"""Rate limiting dependency for FastAPI routes.

Wires the limiter registry into the HTTP layer:
- the settings, registry and admission service live on ``app.state`` (built by the
  app factory), never as module globals
- routes opt in per scope with ``Depends(enforce_rate_limit("admin"))``
- callers are identified by client IP (see ``client_identity``)
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request, Response

from app.adapters.rate_limit.base import RateLimitResult
from app.adapters.rate_limit.registry import RateLimiterRegistry
from app.core.client_identity import resolve_client_identifier
from app.core.config import Settings
from app.services.admission_service import AdmissionService


def get_settings(request: Request) -> Settings:
    """Return the settings the running application was built with."""

    return request.app.state.settings


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    """Return the limiter registry attached to the running application."""

    return request.app.state.rate_limiters


def get_admission_service(request: Request) -> AdmissionService:
    """Return the admission service attached to the running application."""

    return request.app.state.admission_service


def get_client_identifier(request: Request) -> str:
    """FastAPI dependency resolving the caller's rate limit identifier."""

    return resolve_client_identifier(
        request, trust_proxy_headers=get_settings(request).app.trust_proxy_headers
    )


def build_rate_limit_headers(
    result: RateLimitResult, now_ms: int, *, include_headers: bool = True
) -> dict[str, str]:
    """Map a limiter result to response headers.

    ``X-RateLimit-Reset`` is the epoch-millisecond refill time. ``Retry-After``
    (seconds) is only present on denial.

    Args:
        result: Outcome of a limiter check.
        now_ms: Current epoch milliseconds used to compute Retry-After.
        include_headers: The app's ``rate_limit.include_headers`` toggle.

    Returns:
        Header name to value mapping (empty when headers are disabled).
    """

    if not include_headers:
        return {}

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }
    if not result.success:
        headers["Retry-After"] = str(result.retry_after_seconds(now_ms))
    return headers


def enforce_rate_limit(scope: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a dependency that throttles the route with the ``scope`` limiter.

    Usage:
        @router.delete("/x", dependencies=[Depends(enforce_rate_limit("admin"))])

    Args:
        scope: Registered limiter name.

    Returns:
        Async dependency that admits the request or raises
        ``RateLimitExceededError`` (rendered as HTTP 429).
    """

    async def _enforce(request: Request, response: Response) -> None:
        rate_limit_settings = get_settings(request).rate_limit
        if not rate_limit_settings.enabled:
            return

        service = get_admission_service(request)
        result = service.admit(scope, get_client_identifier(request))
        limiter = service.registry.get(scope)
        response.headers.update(
            build_rate_limit_headers(
                result,
                limiter.now_ms(),
                include_headers=rate_limit_settings.include_headers,
            )
        )

    return _enforce
