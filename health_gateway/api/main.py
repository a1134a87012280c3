"""FastAPI application factory.

Assembles the gateway in a fixed order:
- Error boundary and exception handlers (router no-match included)
- The request pipeline: access logging, body parsing, CORS, security headers
- Static routes: health check, root redirect, documentation UI
- The route registry with the debug and domain handler groups

The store handle is injected: the process entry point creates exactly one
and hands it over; when none is given the factory builds its own and the
application closes it on shutdown. For local runs:

    uvicorn --factory health_gateway.api.main:create_app
"""

import asyncio
import platform
import time
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import RedirectResponse
from loguru import logger

from health_gateway.api.constants import DEBUG_PREFIX, STARTUP_PING_TIMEOUT_SECONDS
from health_gateway.api.middleware.body_parsing import BodyParsingStep
from health_gateway.api.middleware.cors import CorsStep
from health_gateway.api.middleware.error_handler import (
    ErrorBoundary,
    register_exception_handlers,
)
from health_gateway.api.middleware.pipeline import PipelineMiddleware, PipelineStep
from health_gateway.api.middleware.request_logging import AccessLoggingStep
from health_gateway.api.middleware.security_headers import SecurityHeadersStep
from health_gateway.api.routes import debug
from health_gateway.api.routes.registry import HandlerGroup, RouteRegistry
from health_gateway.api.schemas.health import HealthStatus
from health_gateway.api.utils.responses import ORJSONResponse
from health_gateway.core.config import Settings, get_settings
from health_gateway.core.logging import setup_logging
from health_gateway.infrastructure.database import StoreHandle


def build_pipeline_steps(settings: Settings) -> list[PipelineStep]:
    """Build the pipeline steps in their fixed order.

    Logging comes first so that requests rejected by a later step are still
    logged; the header steps run before routing so that every response,
    failed or not, carries their headers.
    """
    http_config = settings.http_config
    return [
        AccessLoggingStep(
            settings.log_config,
            trust_proxy_headers=settings.environment == "production",
        ),
        BodyParsingStep(http_config.max_body_bytes),
        CorsStep(http_config),
        SecurityHeadersStep(
            hsts_enabled=http_config.hsts_enabled,
            hsts_max_age=http_config.hsts_max_age,
            hsts_include_subdomains=http_config.hsts_include_subdomains,
            hsts_preload=http_config.hsts_preload,
        ),
    ]


async def _check_store(store: StoreHandle) -> None:
    """Log whether the store answers; never fails startup."""
    try:
        reachable, error_msg = await asyncio.wait_for(
            store.ping(), timeout=STARTUP_PING_TIMEOUT_SECONDS
        )
    except TimeoutError:
        reachable, error_msg = False, "connectivity check timed out"

    if reachable:
        logger.info("Database connection successful")
    else:
        logger.warning("Database unreachable at startup: {}", error_msg)


def create_app(
    settings: Settings | None = None,
    *,
    store: StoreHandle | None = None,
    handler_groups: Iterable[tuple[str, HandlerGroup]] = (),
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        store: Shared store handle. Built from settings (and closed with the
            application) if not provided.
        handler_groups: ``(prefix, handler group)`` pairs for the domain routes.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)

    owns_store = store is None
    if store is None:
        store = StoreHandle.from_config(settings.database_config)
    shared_store = store

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
        await _check_store(shared_store)
        logger.info(
            "Application startup complete - {} v{}",
            app_instance.title,
            app_instance.version,
            environment=settings.environment,
        )

        yield

        if owns_store:
            await shared_store.close()
        logger.info("Application shutdown complete")

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.store = shared_store
    application.state.started_at = time.monotonic()

    boundary = ErrorBoundary(environment=settings.environment)
    register_exception_handlers(application, boundary)

    application.add_middleware(
        PipelineMiddleware,
        steps=build_pipeline_steps(settings),
        boundary=boundary,
        request_timeout=settings.http_config.request_timeout_seconds,
    )

    docs_url = settings.docs_url or settings.openapi_url or "/health"

    @application.get("/", include_in_schema=False)
    async def root() -> RedirectResponse:
        """Redirect to the documentation UI."""
        return RedirectResponse(url=docs_url, status_code=302)

    @application.get("/health", response_model=HealthStatus, tags=["health"])
    async def health() -> HealthStatus:
        """Liveness check for orchestrators and load balancers.

        Does not touch the database: a reachable process answers 200.
        """
        runtime_version = platform.python_version()
        return HealthStatus(
            environment=settings.environment,
            runtime_version=runtime_version,
            node_version=runtime_version,
            uptime=round(time.monotonic() - application.state.started_at, 3),
        )

    registry = RouteRegistry(shared_store, [(DEBUG_PREFIX, debug.build_router)])
    for prefix, group in handler_groups:
        registry.register(prefix, group)
    registry.mount(application)
    application.state.route_registry = registry

    return application
