"""OpenAPI customization for the admission API.

Adds the ``X-API-Key`` security scheme, tag descriptions and the 429 response
shared by every throttled operation, and exempts health checks from auth.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Admission",
        "description": "Admission checks and bucket administration per limiter scope.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]

_TOO_MANY_REQUESTS = {
    "description": "Rate limit exceeded. See Retry-After and X-RateLimit-Reset.",
    "headers": {
        "Retry-After": {
            "description": "Seconds until the caller's bucket is refilled.",
            "schema": {"type": "integer"},
        },
        "X-RateLimit-Reset": {
            "description": "Epoch milliseconds of the next refill.",
            "schema": {"type": "integer"},
        },
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and metadata."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(t for t in _TAGS if t["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.endswith("/health"):
                    method_obj["security"] = []
                else:
                    method_obj.setdefault("responses", {}).setdefault("429", _TOO_MANY_REQUESTS)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
