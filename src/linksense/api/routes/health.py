"""Health check endpoint for monitoring and load balancers."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from linksense.api.dependencies import get_services
from linksense.api.services import ServiceContainer
from linksense.config import SUPPORTED_PROVIDERS
from linksense.observability.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


class HealthCheckComponent(BaseModel):
    """Health status of a single component.

    Attributes:
        status: Component status (healthy, unhealthy, degraded)
        message: Optional status message or error details
    """

    status: str
    message: str | None = None


class HealthCheckResponse(BaseModel):
    """Overall health check response.

    Attributes:
        status: Overall system status (healthy, unhealthy, degraded)
        components: Status of individual components
        version: Application version
    """

    status: str
    components: dict[str, HealthCheckComponent]
    version: str = "0.1.0"


async def check_database_health(services: ServiceContainer) -> HealthCheckComponent:
    """Check database connectivity.

    Returns:
        HealthCheckComponent with database status
    """
    if services.database is None:
        return HealthCheckComponent(status="healthy", message="In-memory credential store")

    try:
        await services.database.health_check()
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return HealthCheckComponent(status="unhealthy", message=f"Database error: {e}")

    return HealthCheckComponent(status="healthy", message="Database connection successful")


def check_provider_configuration(services: ServiceContainer) -> HealthCheckComponent:
    """Report how many providers have a complete OAuth client registration.

    No configured provider is degraded rather than unhealthy: stored
    credentials can still be queried, only new connections fail.
    """
    configured = services.oauth.supported_providers()
    message = f"{len(configured)}/{len(SUPPORTED_PROVIDERS)} providers configured"
    if not configured:
        return HealthCheckComponent(status="degraded", message=message)
    return HealthCheckComponent(status="healthy", message=message)


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(services: ServiceContainer = Depends(get_services)) -> JSONResponse:
    """Health check endpoint.

    Returns:
        200 OK if healthy or degraded, 503 Service Unavailable if the database is down

    Example:
        >>> GET /health
        >>> {
        ...     "status": "healthy",
        ...     "components": {
        ...         "database": {"status": "healthy", "message": "..."},
        ...         "providers": {"status": "healthy", "message": "7/7 providers configured"}
        ...     },
        ...     "version": "0.1.0"
        ... }
    """
    components = {
        "database": await check_database_health(services),
        "providers": check_provider_configuration(services),
    }

    statuses = [c.status for c in components.values()]
    if "unhealthy" in statuses:
        overall_status = "unhealthy"
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif "degraded" in statuses:
        overall_status = "degraded"
        status_code = status.HTTP_200_OK
    else:
        overall_status = "healthy"
        status_code = status.HTTP_200_OK

    response = HealthCheckResponse(status=overall_status, components=components)
    logger.info(
        "health_check_completed",
        overall_status=overall_status,
        **{name: c.status for name, c in components.items()},
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())
