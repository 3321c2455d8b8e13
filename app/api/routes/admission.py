from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from app.adapters.rate_limit.registry import ADMIN_SCOPE
from app.core.auth import verify_api_key
from app.core.rate_limit import (
    build_rate_limit_headers,
    enforce_rate_limit,
    get_admission_service,
    get_client_identifier,
    get_settings,
)
from app.schemas.admission import (
    AdmissionCheckRequest,
    AdmissionDecision,
    BucketResetRequest,
    LimiterDescription,
    LimiterList,
)

router = APIRouter(
    prefix="/admission",
    tags=["Admission"],
    dependencies=[Depends(verify_api_key)],
)

_admin_throttle = [Depends(enforce_rate_limit(ADMIN_SCOPE))]


@router.post("/{scope}/check", response_model=AdmissionDecision)
async def check_admission(
    scope: str,
    request: Request,
    response: Response,
    body: AdmissionCheckRequest | None = None,
) -> AdmissionDecision:
    """Ask whether a caller may proceed under the ``scope`` limiter.

    Spends one credit for the identifier. The storefront forwards the
    shopper's identifier in the body; without one, the address of the calling
    client is used. Denials are answered with HTTP 429 and a Retry-After
    header.

    Args:
        scope: Limiter name (checkout, webhook, admin).
        request: Incoming request, used to derive a default identifier.
        response: Outgoing response, receives X-RateLimit-* headers.
        body: Optional explicit identifier.

    Returns:
        AdmissionDecision for an allowed request.
    """
    service = get_admission_service(request)

    identifier = body.identifier if body is not None else None
    if identifier is None:
        identifier = get_client_identifier(request)

    result = service.admit(scope, identifier)
    now_ms = service.registry.get(scope).now_ms()
    include_headers = get_settings(request).rate_limit.include_headers
    response.headers.update(
        build_rate_limit_headers(result, now_ms, include_headers=include_headers)
    )

    return AdmissionDecision(
        scope=scope,
        success=result.success,
        remaining=result.remaining,
        reset=result.reset,
        limit=result.limit,
    )


@router.get("", response_model=LimiterList, dependencies=_admin_throttle)
async def list_limiters(request: Request) -> LimiterList:
    """List every configured limiter with its current bucket count."""
    service = get_admission_service(request)
    return LimiterList(
        scopes=[
            LimiterDescription(**service.describe(scope))
            for scope in service.registry.scopes()
        ]
    )


@router.get("/{scope}", response_model=LimiterDescription, dependencies=_admin_throttle)
async def describe_limiter(scope: str, request: Request) -> LimiterDescription:
    return LimiterDescription(**get_admission_service(request).describe(scope))


@router.delete(
    "/{scope}/buckets/{identifier:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=_admin_throttle,
)
async def reset_bucket(scope: str, identifier: str, request: Request) -> None:
    """Forget one caller's bucket; the next check behaves as a first request.

    Slashes in the identifier are part of the key. ``POST /{scope}/reset``
    takes the identifier in the body, which also covers the empty key.
    """
    get_admission_service(request).reset(scope, identifier)


@router.post(
    "/{scope}/reset",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=_admin_throttle,
)
async def reset_bucket_by_body(
    scope: str, body: BucketResetRequest, request: Request
) -> None:
    """Forget the bucket of ``body.identifier``, whatever characters it holds."""
    get_admission_service(request).reset(scope, body.identifier)


@router.delete(
    "/{scope}/buckets",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=_admin_throttle,
)
async def clear_buckets(scope: str, request: Request) -> None:
    """Forget every bucket of the ``scope`` limiter."""
    get_admission_service(request).clear(scope)
