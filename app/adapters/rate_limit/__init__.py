"""Rate limiting adapters.

Admission control for the storefront: an abstract limiter interface, the
in-memory token-bucket implementation and the registry of named limiters
(checkout, webhook, admin) built at startup.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitConfig,
    RateLimitResult,
    TokenBucket,
)
from app.adapters.rate_limit.registry import RateLimiterRegistry, build_rate_limiters
from app.adapters.rate_limit.token_bucket import TokenBucketRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimiterRegistry",
    "TokenBucket",
    "TokenBucketRateLimiter",
    "build_rate_limiters",
]
