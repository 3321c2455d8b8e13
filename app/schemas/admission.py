"""Pydantic schemas for the admission API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AdmissionCheckRequest(BaseModel):
    """Body of an admission check."""

    identifier: str | None = Field(
        default=None,
        description=(
            "Caller key to throttle (e.g., shopper IP forwarded by the storefront). "
            "When omitted, the client address of this request is used. "
            "Empty string is a valid, distinct key."
        ),
    )


class BucketResetRequest(BaseModel):
    """Body of a single-bucket reset."""

    identifier: str = Field(
        ...,
        description=(
            "Caller key whose bucket is forgotten. Any string is accepted, "
            "including the empty string and keys containing slashes."
        ),
    )


class AdmissionDecision(BaseModel):
    """Result of an allowed admission check."""

    scope: str = Field(..., description="Limiter that made the decision.")
    success: bool = Field(..., description="Whether the request may proceed.")
    remaining: int = Field(..., description="Credits left in the caller's bucket.")
    reset: int = Field(..., description="Epoch milliseconds of the next refill.")
    limit: int = Field(..., description="Requests allowed per interval.")


class LimiterDescription(BaseModel):
    """Configuration and occupancy of one limiter."""

    scope: str
    interval_ms: int = Field(..., description="Refill window in milliseconds.")
    max_requests: int = Field(..., description="Bucket capacity per window.")
    buckets: int = Field(..., description="Identifiers currently tracked.")


class LimiterList(BaseModel):
    scopes: list[LimiterDescription] = Field(default_factory=list)
