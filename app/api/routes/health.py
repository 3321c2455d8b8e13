from __future__ import annotations

from fastapi import APIRouter, Request

from app.adapters.rate_limit.token_bucket import TokenBucketRateLimiter
from app.core.rate_limit import get_rate_limiters

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check for load balancers and monitoring.

    Also reports whether each limiter's background sweep is running, so a
    stalled sweep (unbounded bucket growth) shows up in monitoring.

    Returns:
        dict: ``status`` plus per-scope sweep state.
    """

    sweepers = {
        scope: limiter.is_sweeping
        for scope, limiter in get_rate_limiters(request)
        if isinstance(limiter, TokenBucketRateLimiter)
    }
    return {"status": "ok", "sweepers": sweepers}
