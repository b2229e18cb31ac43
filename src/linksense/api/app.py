"""FastAPI application factory for the LinkSense integration API.

This module provides the application factory pattern for creating
configured FastAPI instances with all necessary middleware, routes,
and error handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from linksense.api.middleware.correlation import CorrelationIdMiddleware
from linksense.api.middleware.error_handler import setup_error_handlers
from linksense.api.routes.data_integration import router as data_integration_router
from linksense.api.routes.health import router as health_router
from linksense.api.routes.oauth import router as oauth_router
from linksense.api.services import ServiceContainer, build_services
from linksense.config import load_config_from_env
from linksense.observability.logging import get_logger, setup_logging
from linksense.observability.metrics import get_metrics_collector
from linksense.storage.database import Database, DatabaseConfig

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events.

    Builds the services from the environment unless a container was injected
    into ``create_app``; only services built here are closed on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    if getattr(app.state, "services", None) is not None:
        yield
        return

    config = load_config_from_env()
    setup_logging(log_level=config.log_level, json_logs=config.json_logs)
    logger.info("application_startup", database_url=config.database_url.split("@")[-1])

    database = Database(DatabaseConfig(url=config.database_url))
    await database.create_tables()
    services = build_services(config, database=database)
    app.state.services = services

    configured = services.oauth.supported_providers()
    logger.info("application_startup_complete", configured_providers=configured)

    try:
        yield
    finally:
        logger.info("application_shutdown")
        await services.close()
        app.state.services = None


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        services: Pre-built service container; built from the environment at startup if None

    Returns:
        Configured FastAPI application instance

    Examples:
        >>> app = create_app()
        >>> # Use with uvicorn
        >>> # uvicorn linksense.api.app:app --reload
    """
    app = FastAPI(
        title="LinkSense Integration API",
        version="0.1.0",
        description="OAuth connections and unified data across collaboration providers",
        lifespan=lifespan,
    )
    app.state.services = services

    # TODO: Restrict allowed origins to LINKSENSE_APP_BASE_URL once the front end is deployed
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)  # type: ignore[arg-type]

    setup_error_handlers(app)

    app.include_router(oauth_router)
    app.include_router(data_integration_router)
    app.include_router(health_router)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint.

        Returns:
            Metrics in Prometheus exposition format

        Examples:
            >>> GET /metrics
            >>> # HELP linksense_provider_fetches_total Provider data fetches
            >>> # TYPE linksense_provider_fetches_total counter
            >>> linksense_provider_fetches_total{kind="messages",provider="slack",...} 3.0
        """
        return Response(
            content=get_metrics_collector().generate_metrics(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app


# Module-level app instance for uvicorn
app = create_app()
