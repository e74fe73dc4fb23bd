from __future__ import annotations

"""Application factory for the gateway.

Centralizes app construction (metadata, services, middleware, handlers,
routers) so tests can build isolated apps with their own backends.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import debug_router, health_router, objects_router, scheduled_router
from app.core.admission import AdmissionInterceptor
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.pipeline import GatewayPipeline
from app.core.rate_limit import RateLimitInterceptor
from app.core.services import GatewayServices, build_services


def create_app(
    settings: Settings | None = None,
    services: GatewayServices | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; the process-wide settings by default.
        services: Prebuilt service container (tests inject in-memory backends).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    settings = settings or (services.settings if services else default_settings)

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log, debug=settings.app.debug)

    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.start()
        try:
            yield
        finally:
            await services.close()

    app = FastAPI(
        title="Object Gateway",
        description=(
            "Edge gateway in front of an object bucket. Streams objects under "
            f"/{settings.app.object_route_prefix.strip('/')}/, rejects bot-like "
            "clients, enforces burst and sustained rate limits per client "
            "fingerprint, and runs a janitor that removes stale objects and "
            "expired limiter counters."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.services = services

    # Middleware: the last one added runs outermost, so request ids are set
    # before the pipeline logs anything.
    app.middleware("http")(GatewayPipeline([AdmissionInterceptor(), RateLimitInterceptor()]))
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers; the object catch-all must come last
    app.include_router(health_router)
    app.include_router(debug_router)
    app.include_router(scheduled_router)
    app.include_router(objects_router)

    # OpenAPI customizations (admin key scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
