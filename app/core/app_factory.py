"""Application factory for the admission control API.

Centralizes app construction (limiters, middleware, handlers, routers) so
tests can build an isolated app with its own bucket stores.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from app.adapters.rate_limit.registry import RateLimiterRegistry, build_rate_limiters
from app.api.routes import admission_router, health_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.admission_service import AdmissionService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run the limiters' background sweeps for the lifetime of the app."""
    registry: RateLimiterRegistry = app.state.rate_limiters
    registry.start_all()
    try:
        yield
    finally:
        registry.close_all()


def create_app(
    app_settings: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings for limiters, logging and the HTTP layer;
            defaults to the process-wide settings. Stored on
            ``app.state.settings``.
        clock: Time source for every limiter (UNIX seconds).

    Returns:
        Configured FastAPI app with limiters on ``app.state``.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Storefront Admission API",
        description=(
            "In-memory token-bucket admission control for the storefront's "
            "checkout, payment webhook and admin endpoints. Requires X-API-Key; "
            "denials are returned as HTTP 429 with Retry-After."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    registry = build_rate_limiters(cfg.rate_limit, clock=clock)
    app.state.rate_limiters = registry
    app.state.admission_service = AdmissionService(registry)

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(admission_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    logger.info("app.created", extra={"scopes": registry.scopes()})
    return app
