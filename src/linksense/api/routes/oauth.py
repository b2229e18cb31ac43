"""OAuth connect, callback and connection management routes.

The browser starts a flow with ``POST /api/integrations/oauth-start`` and is
sent to the provider. The provider redirects back to
``/api/auth/{provider}/callback``, which completes the flow and redirects to
the front end with either ``success=`` or ``error=`` in the query string.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from linksense.api.dependencies import get_current_user, get_oauth_manager, get_services
from linksense.api.services import ServiceContainer
from linksense.config import SUPPORTED_PROVIDERS
from linksense.errors import LinkSenseError
from linksense.integrations.oauth.manager import OAuthIntegrationManager
from linksense.integrations.providers.registry import get_spec
from linksense.observability.logging import get_logger
from linksense.storage.credential_store import Credential

logger = get_logger(__name__)

router = APIRouter(tags=["integrations"])

COOKIE_PREFIX = "linksense_oauth_"


def cookie_name(provider: str) -> str:
    """Name of the HTTP-only cookie holding a flow's nonce."""
    return f"{COOKIE_PREFIX}{provider.replace('-', '_')}"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IntegrationRequest(CamelModel):
    """Body of the start and disconnect endpoints."""

    integration_id: str = Field(min_length=1)


class OAuthStartResponse(CamelModel):
    auth_url: str
    integration_id: str
    timestamp: datetime


class DisconnectResponse(CamelModel):
    success: bool
    integration_id: str
    message: str


class IntegrationStatus(CamelModel):
    """Connection state of one provider for the current user."""

    integration_id: str
    display_name: str
    connected: bool
    configured: bool
    team_name: Optional[str] = None
    user_name: Optional[str] = None
    connected_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class IntegrationStatusResponse(CamelModel):
    integrations: list[IntegrationStatus]
    connected_count: int
    total_services: int
    last_updated: datetime


@router.post("/api/integrations/oauth-start", response_model=OAuthStartResponse)
async def start_oauth(
    body: IntegrationRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> JSONResponse:
    """Start a connect flow for the authenticated user.

    Returns the provider authorization URL and sets an HTTP-only cookie with
    the flow nonce; the callback only accepts state issued to this browser.

    Example:
        >>> POST /api/integrations/oauth-start
        >>> {"integrationId": "slack"}
        >>>
        >>> {
        >>>   "authUrl": "https://slack.com/oauth/v2/authorize?client_id=...",
        >>>   "integrationId": "slack",
        >>>   "timestamp": "2024-01-15T10:30:00Z"
        >>> }
    """
    request = services.oauth.build_authorization_url(user_id, body.integration_id)
    payload = OAuthStartResponse(
        auth_url=request.url,
        integration_id=request.provider,
        timestamp=datetime.now(timezone.utc),
    )
    response = JSONResponse(content=payload.model_dump(by_alias=True, mode="json"))
    response.set_cookie(
        cookie_name(request.provider),
        request.nonce,
        max_age=services.config.state_ttl_seconds,
        httponly=True,
        secure=services.config.secure_cookies,
        samesite="lax",
        path="/",
    )
    logger.info("oauth_start", user_id=user_id, provider=request.provider)
    return response


def _frontend_redirect(
    services: ServiceContainer, provider: str, **params: str
) -> RedirectResponse:
    url = f"{services.config.app_base_url}/integrations?{urlencode(params)}"
    response = RedirectResponse(url=url, status_code=307)
    response.delete_cookie(cookie_name(provider), path="/")
    return response


CallbackHandler = Callable[..., Coroutine[Any, Any, RedirectResponse]]


def _make_callback(provider: str) -> CallbackHandler:
    async def oauth_callback(
        code: Optional[str] = Query(None, description="OAuth authorization code"),
        state: Optional[str] = Query(None, description="OAuth state parameter"),
        error: Optional[str] = Query(None, description="Error reported by the provider"),
        error_description: Optional[str] = Query(None),
        services: ServiceContainer = Depends(get_services),
        cookie: Optional[str] = Depends(_cookie_reader(provider)),
    ) -> RedirectResponse:
        if error:
            logger.warning("oauth_provider_error", provider=provider, error=error)
            return _frontend_redirect(
                services, provider, error=error, message=error_description or error
            )

        try:
            credential = await services.oauth.handle_callback(provider, code, state, cookie)
        except LinkSenseError as e:
            return _frontend_redirect(services, provider, error=e.code, message=e.message)
        except Exception:
            logger.exception("oauth_callback_failed", provider=provider)
            return _frontend_redirect(
                services, provider, error="internal_error", message="Connection failed"
            )

        return _frontend_redirect(
            services,
            provider,
            success=provider,
            user=credential.external_user_name or "",
            organization=credential.external_team_name or "",
        )

    oauth_callback.__name__ = f"{provider.replace('-', '_')}_oauth_callback"
    oauth_callback.__doc__ = f"Complete the {get_spec(provider).display_name} connect flow."
    return oauth_callback


def _cookie_reader(provider: str) -> Callable[..., Optional[str]]:
    def read_cookie(
        value: Optional[str] = Cookie(None, alias=cookie_name(provider)),
    ) -> Optional[str]:
        return value

    return read_cookie


for _provider in SUPPORTED_PROVIDERS:
    router.add_api_route(
        f"/api/auth/{_provider}/callback",
        _make_callback(_provider),
        methods=["GET"],
        response_class=RedirectResponse,
    )


@router.post("/api/integrations/disconnect", response_model=DisconnectResponse)
async def disconnect_integration(
    body: IntegrationRequest,
    user_id: str = Depends(get_current_user),
    oauth: OAuthIntegrationManager = Depends(get_oauth_manager),
) -> DisconnectResponse:
    """Disconnect a provider. The credential is deactivated, not deleted."""
    found = await oauth.disconnect(user_id, body.integration_id)
    message = "Integration disconnected" if found else "No stored integration; nothing to do"
    return DisconnectResponse(success=True, integration_id=body.integration_id, message=message)


@router.get("/api/integrations/status", response_model=IntegrationStatusResponse)
async def integration_status(
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> IntegrationStatusResponse:
    """List every provider with the user's connection state. Tokens are never included."""
    credentials = {c.provider: c for c in await services.store.list_for_user(user_id)}
    configured = set(services.oauth.supported_providers())
    integrations = [
        _status_entry(provider, credentials.get(provider), provider in configured)
        for provider in SUPPORTED_PROVIDERS
    ]
    return IntegrationStatusResponse(
        integrations=integrations,
        connected_count=len([i for i in integrations if i.connected]),
        total_services=len(SUPPORTED_PROVIDERS),
        last_updated=datetime.now(timezone.utc),
    )


def _status_entry(
    provider: str, credential: Optional[Credential], configured: bool
) -> IntegrationStatus:
    entry = IntegrationStatus(
        integration_id=provider,
        display_name=get_spec(provider).display_name,
        connected=bool(credential and credential.is_active),
        configured=configured,
    )
    if credential is not None and credential.is_active:
        entry.team_name = credential.external_team_name
        entry.user_name = credential.external_user_name
        entry.connected_at = credential.created_at
        entry.updated_at = credential.updated_at
    return entry
