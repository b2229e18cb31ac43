"""OAuth 2.0 connect flows for all providers.

This module builds authorization URLs, validates callbacks, exchanges codes
for tokens, resolves the connected identity and persists the resulting
credential. Provider differences come from each adapter's ProviderSpec.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from linksense.config import SUPPORTED_PROVIDERS, AppConfig, ProviderCredentials
from linksense.errors import (
    ConfigurationError,
    IdentityLookupError,
    LinkSenseError,
    ProviderFetchError,
    StateMismatchError,
    TokenExchangeError,
)
from linksense.integrations.oauth.state import StateSigner
from linksense.integrations.providers.base import (
    OAuthTokens,
    ProviderAdapter,
    ProviderIdentity,
    ProviderSpec,
    TokenAuthStyle,
)
from linksense.integrations.providers.registry import create_adapter, get_spec
from linksense.observability.logging import get_logger
from linksense.observability.metrics import get_metrics_collector
from linksense.storage.credential_store import Credential, CredentialStore, CredentialUpsert

logger = get_logger(__name__)

AdapterFactory = Callable[[str, httpx.AsyncClient], ProviderAdapter]


class ConnectState(str, Enum):
    """States of a single connect flow."""

    STARTED = "started"
    AWAITING_PROVIDER_REDIRECT = "awaiting_provider_redirect"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    IDENTITY_UNKNOWN = "identity_unknown"
    PERSISTED = "persisted"
    CONFIG_MISSING = "config_missing"
    STATE_INVALID = "state_invalid"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    USER_INFO_FAILED = "user_info_failed"


_TERMINAL_FOR_ERROR: dict[type[LinkSenseError], ConnectState] = {
    ConfigurationError: ConnectState.CONFIG_MISSING,
    StateMismatchError: ConnectState.STATE_INVALID,
    TokenExchangeError: ConnectState.TOKEN_EXCHANGE_FAILED,
    IdentityLookupError: ConnectState.USER_INFO_FAILED,
}


class AuthorizationRequest(BaseModel):
    """Result of starting a connect flow.

    Attributes:
        provider: Provider identifier
        url: Provider authorization URL to redirect the user to
        state: Signed state value embedded in the URL
        nonce: Value to store in the HTTP-only flow cookie
    """

    provider: str
    url: str
    state: str
    nonce: str


class OAuthIntegrationManager:
    """Runs OAuth connect flows and maintains stored credentials.

    Example:
        >>> manager = OAuthIntegrationManager(config, store, client, signer)
        >>> request = manager.build_authorization_url("user-1", "slack")
        >>> # ... user authorizes, provider redirects back ...
        >>> credential = await manager.handle_callback("slack", code, state, cookie_nonce)
    """

    def __init__(
        self,
        config: AppConfig,
        store: CredentialStore,
        client: httpx.AsyncClient,
        state_signer: StateSigner,
        adapter_factory: AdapterFactory = create_adapter,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Service configuration with provider client registrations
            store: Credential store
            client: HTTP client for token and identity calls
            state_signer: Issues and verifies OAuth state
            adapter_factory: Builds the provider adapter used for identity lookup
        """
        self._config = config
        self._store = store
        self._client = client
        self._signer = state_signer
        self._adapter_factory = adapter_factory

    def supported_providers(self) -> list[str]:
        """Provider ids with a complete client registration, in canonical order."""
        return [p for p in SUPPORTED_PROVIDERS if not self._missing_config(get_spec(p), p)]

    def build_authorization_url(self, user_id: str, provider: str) -> AuthorizationRequest:
        """Start a connect flow.

        Args:
            user_id: Authenticated user starting the flow
            provider: Provider to connect

        Returns:
            Authorization URL, signed state and the nonce for the flow cookie

        Raises:
            UnsupportedProviderError: If the provider id is unknown
            ConfigurationError: If the provider's client registration is incomplete
        """
        spec = get_spec(provider)
        self._transition(provider, ConnectState.STARTED, user_id=user_id)
        try:
            credentials = self._client_credentials(spec, provider)
        except ConfigurationError:
            self._fail(provider, ConnectState.CONFIG_MISSING)
            raise

        state, payload = self._signer.issue(user_id, provider)
        params = {
            "client_id": credentials.client_id,
            "redirect_uri": self._config.redirect_uri_for(provider),
            "response_type": "code",
            "scope": spec.scope_separator.join(spec.scopes),
            "state": state,
            **spec.extra_authorize_params,
        }
        url = f"{self._format_url(spec.authorize_url, credentials)}?{urlencode(params)}"

        self._transition(provider, ConnectState.AWAITING_PROVIDER_REDIRECT, user_id=user_id)
        return AuthorizationRequest(provider=provider, url=url, state=state, nonce=payload.nonce)

    async def handle_callback(
        self,
        provider: str,
        code: Optional[str],
        state: Optional[str],
        cookie_nonce: Optional[str],
    ) -> Credential:
        """Complete a connect flow from the provider redirect.

        Args:
            provider: Provider whose callback was hit
            code: Authorization code
            state: State value echoed by the provider
            cookie_nonce: Nonce read from the flow cookie

        Returns:
            The stored, active credential

        Raises:
            StateMismatchError: If state validation fails
            ConfigurationError: If the provider's client registration is incomplete
            TokenExchangeError: If the code cannot be exchanged
            IdentityLookupError: If the user-info call fails for a provider that requires it
        """
        try:
            return await self._complete(provider, code, state, cookie_nonce)
        except LinkSenseError as e:
            terminal = _TERMINAL_FOR_ERROR.get(type(e))
            if terminal is not None:
                self._fail(provider, terminal, reason=e.message)
            raise

    async def disconnect(self, user_id: str, provider: str) -> bool:
        """Deactivate a user's credential for a provider.

        Returns:
            False if the user never connected the provider
        """
        get_spec(provider)
        revoked = await self._store.revoke(user_id, provider)
        logger.info("integration_disconnected", user_id=user_id, provider=provider, found=revoked)
        return revoked

    async def refresh_credential(self, credential: Credential) -> Credential:
        """Use the refresh token to obtain a new access token.

        Args:
            credential: Credential whose access token was rejected

        Returns:
            The credential with replaced tokens

        Raises:
            TokenExchangeError: If there is no refresh token or the grant fails
        """
        provider = credential.provider
        if not credential.refresh_token:
            raise TokenExchangeError(provider, "no refresh token available")

        spec = get_spec(provider)
        credentials = self._client_credentials(spec, provider)
        tokens = await self._request_tokens(
            spec,
            credentials,
            {"grant_type": "refresh_token", "refresh_token": credential.refresh_token},
        )
        refreshed = await self._store.update_tokens(
            credential.user_id,
            provider,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=_expires_at(tokens),
        )
        logger.info("credential_refreshed", user_id=credential.user_id, provider=provider)
        return refreshed

    async def _complete(
        self,
        provider: str,
        code: Optional[str],
        state: Optional[str],
        cookie_nonce: Optional[str],
    ) -> Credential:
        spec = get_spec(provider)
        payload = self._signer.verify(state, provider=provider, nonce=cookie_nonce)
        if not code:
            raise TokenExchangeError(provider, "authorization code missing from callback")
        self._transition(provider, ConnectState.CODE_RECEIVED, user_id=payload.user_id)

        credentials = self._client_credentials(spec, provider)
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri_for(provider),
        }
        tokens = await self._request_tokens(spec, credentials, data)
        self._transition(provider, ConnectState.TOKEN_EXCHANGED, user_id=payload.user_id)

        adapter = self._adapter_factory(provider, self._client)
        identity = await self._resolve_identity(spec, adapter, tokens, payload.user_id)

        credential = await self._store.upsert(
            CredentialUpsert(
                user_id=payload.user_id,
                provider=provider,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                scope=tokens.scope,
                token_type=tokens.token_type,
                expires_at=_expires_at(tokens),
                external_team_id=identity.team_id,
                external_team_name=identity.team_name,
                external_user_name=identity.user_name,
            )
        )
        self._transition(provider, ConnectState.PERSISTED, user_id=payload.user_id)
        get_metrics_collector().record_oauth_connect(provider, ConnectState.PERSISTED.value)
        return credential

    async def _resolve_identity(
        self,
        spec: ProviderSpec,
        adapter: ProviderAdapter,
        tokens: OAuthTokens,
        user_id: str,
    ) -> ProviderIdentity:
        """Run the user-info call and the best-effort organization lookup."""
        provider = spec.provider
        try:
            identity = await adapter.fetch_identity(tokens)
            self._transition(provider, ConnectState.IDENTITY_RESOLVED, user_id=user_id)
        except ProviderFetchError as e:
            if spec.identity_required:
                raise IdentityLookupError(provider, e.reason) from e
            logger.warning("identity_lookup_failed", provider=provider, error=e.reason)
            identity = ProviderIdentity()
            self._transition(provider, ConnectState.IDENTITY_UNKNOWN, user_id=user_id)

        if not identity.team_name:
            try:
                organization = await adapter.fetch_organization(tokens)
            except ProviderFetchError as e:
                logger.warning("organization_lookup_failed", provider=provider, error=e.reason)
                organization = None
            if organization is not None:
                identity.team_name = organization.name
                identity.team_id = identity.team_id or organization.id

        if not identity.team_name:
            identity.team_name = spec.default_team_name
        return identity

    async def _request_tokens(
        self,
        spec: ProviderSpec,
        credentials: ProviderCredentials,
        data: dict[str, Any],
    ) -> OAuthTokens:
        """POST a grant to the token endpoint.

        Raises:
            TokenExchangeError: On transport errors, non-2xx, or a body without access_token
        """
        provider = spec.provider
        form = dict(data)
        auth: Optional[tuple[str, str]] = None
        if spec.token_auth == TokenAuthStyle.BASIC:
            auth = (credentials.client_id or "", credentials.client_secret or "")
        else:
            form["client_id"] = credentials.client_id
            form["client_secret"] = credentials.client_secret
        if spec.include_scope_in_token_request:
            form["scope"] = " ".join(spec.scopes)

        try:
            response = await self._client.post(
                self._format_url(spec.token_url, credentials),
                data=form,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(provider, f"request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            detail = None
            if isinstance(body, dict):
                detail = body.get("error_description") or body.get("error")
            reason = f"HTTP {response.status_code}" + (f" ({detail})" if detail else "")
            raise TokenExchangeError(provider, reason)
        if not isinstance(body, dict):
            raise TokenExchangeError(provider, "unexpected token response")
        if body.get("ok") is False:
            raise TokenExchangeError(provider, str(body.get("error", "provider reported failure")))
        if not body.get("access_token"):
            raise TokenExchangeError(provider, "no access_token in token response")

        return OAuthTokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            token_type=body.get("token_type") or "Bearer",
            expires_in=_parse_expires_in(provider, body.get("expires_in")),
            scope=body.get("scope") or spec.scope_separator.join(spec.scopes),
            raw=body,
        )

    def _client_credentials(self, spec: ProviderSpec, provider: str) -> ProviderCredentials:
        missing = self._missing_config(spec, provider)
        if missing:
            raise ConfigurationError(provider, missing)
        return self._config.credentials_for(provider)

    def _missing_config(self, spec: ProviderSpec, provider: str) -> list[str]:
        credentials = self._config.credentials_for(provider)
        missing = []
        if not credentials.client_id:
            missing.append("client_id")
        if not credentials.client_secret:
            missing.append("client_secret")
        if spec.requires_tenant and not credentials.tenant_id:
            missing.append("tenant_id")
        return missing

    @staticmethod
    def _format_url(template: str, credentials: ProviderCredentials) -> str:
        if "{tenant}" not in template:
            return template
        return template.replace("{tenant}", credentials.tenant_id or "common")

    def _transition(self, provider: str, state: ConnectState, **context: Any) -> None:
        logger.info("oauth_state_transition", provider=provider, state=state.value, **context)

    def _fail(self, provider: str, state: ConnectState, **context: Any) -> None:
        logger.warning("oauth_state_transition", provider=provider, state=state.value, **context)
        get_metrics_collector().record_oauth_connect(provider, state.value)


def _expires_at(tokens: OAuthTokens) -> Optional[datetime]:
    if not tokens.expires_in:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in)


def _parse_expires_in(provider: str, value: Any) -> Optional[int]:
    """Read a token lifetime; an unreadable value leaves the expiry unknown."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("token_expiry_unreadable", provider=provider, expires_in=str(value))
        return None
