"""Application entry point: the negotiation engine HTTP service.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error reporting through structlog-sentry when a DSN is set
- **SQLite** database and the property catalog collaborator
- **FastAPI** with the negotiation router, health probes, request IDs and
  Prometheus ``/metrics``
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from negotiation_engine.api import register_error_handlers, router
from negotiation_engine.config import Settings, get_settings, validate_runtime
from negotiation_engine.health import register_health_routes
from negotiation_engine.observability.metrics import setup_metrics
from negotiation_engine.observability.middleware import RequestIdMiddleware
from negotiation_engine.observability.sentry import get_sentry_processor, init_sentry
from negotiation_engine.properties import HttpPropertyDirectory, InMemoryPropertyDirectory
from negotiation_engine.service import NegotiationService
from negotiation_engine.storage.database import Database

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Args:
        production: JSON rendering at INFO level if ``True``, colored console
            at DEBUG level otherwise.
        sentry_enabled: Forward ERROR events to Sentry.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="negotiation-engine")


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up the shared services for the application.

    Creates the database (schema included), the property directory (HTTP
    when ``PROPERTY_SERVICE_URL`` is set, in-memory otherwise) and the
    negotiation service.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    database = Database(settings.database_path, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    database.initialize()
    services["database"] = database

    properties: HttpPropertyDirectory | InMemoryPropertyDirectory
    if settings.property_service_url:
        properties = HttpPropertyDirectory(
            settings.property_service_url,
            token=settings.property_service_token.get_secret_value(),
        )
        logger.info("Property directory initialized", url=settings.property_service_url)
    else:
        properties = InMemoryPropertyDirectory()
        logger.info("PROPERTY_SERVICE_URL not set, using in-memory property directory")
    services["properties"] = properties

    service = NegotiationService(
        database,
        properties,
        fee_rate=settings.platform_fee_rate,
        default_currency=settings.default_currency,
        page_size_limit=settings.page_size_limit,
    )
    service.sync_active_gauge()
    services["negotiation_service"] = service

    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Log startup and release the property directory's HTTP client on shutdown."""
    services = app.state.services
    logger.info("FastAPI application starting")
    yield
    properties = services.get("properties")
    if isinstance(properties, HttpPropertyDirectory):
        await asyncio.to_thread(properties.close)
        logger.info("Property directory client closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with the negotiation router and probes.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Negotiation Engine", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(router)
    register_error_handlers(fastapi_app)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


def run() -> None:
    """Console entry point: configure, initialize and serve with uvicorn."""
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn.get_secret_value(),
        environment="production" if settings.production else "development",
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("Application starting")

    validate_runtime(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    uvicorn.run(fastapi_app, host="0.0.0.0", port=settings.http_port, log_level="info")


if __name__ == "__main__":
    run()
