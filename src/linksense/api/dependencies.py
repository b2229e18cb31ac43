"""FastAPI dependencies for authentication and service access.

Callers authenticate with ``X-API-Key: <user_id>:<secret>``. The secret is
shared with the front end that owns user sessions; the user id is trusted
once the secret matches.
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from linksense.aggregation.orchestrator import AggregationOrchestrator
from linksense.api.services import ServiceContainer
from linksense.errors import UnauthorizedError
from linksense.integrations.oauth.manager import OAuthIntegrationManager


def get_services(request: Request) -> ServiceContainer:
    """Get the service container built during application startup."""
    return request.app.state.services


def get_oauth_manager(
    services: ServiceContainer = Depends(get_services),
) -> OAuthIntegrationManager:
    return services.oauth


def get_orchestrator(
    services: ServiceContainer = Depends(get_services),
) -> AggregationOrchestrator:
    return services.orchestrator


def get_current_user(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    services: ServiceContainer = Depends(get_services),
) -> str:
    """Authenticate the caller and return their user id.

    Args:
        request: FastAPI request object
        x_api_key: API key from X-API-Key header
        services: Service container

    Returns:
        Authenticated user id

    Raises:
        UnauthorizedError: If the header is missing or malformed, the secret
            does not match, or no API secret is configured
    """
    if not x_api_key:
        raise UnauthorizedError("Authentication required")

    user_id, sep, secret = x_api_key.partition(":")
    if not sep or not user_id or not secret:
        raise UnauthorizedError("Invalid API key")

    expected = services.config.api_secret
    if not expected or not hmac.compare_digest(secret.encode(), expected.encode()):
        raise UnauthorizedError("Invalid API key")

    request.state.user_id = user_id
    return user_id
