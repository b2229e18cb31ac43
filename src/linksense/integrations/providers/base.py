"""Provider adapter base class and the per-provider configuration record.

Each provider differs only in data: endpoints, scopes, how client
credentials are sent to the token endpoint and how the access token is sent
to the data API. Those differences live in a ProviderSpec. The adapter
subclasses add the calls that are genuinely provider-specific (container
listing, message paging, identity lookup).
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Optional

import httpx
from pydantic import BaseModel, Field

from linksense.errors import ProviderAuthError, ProviderFetchError
from linksense.normalization.models import CONTAINER_KEY, DataIntegrationOptions
from linksense.observability.logging import get_logger
from linksense.storage.credential_store import Credential

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

# Sent with every provider call; some APIs reject requests without a user agent.
USER_AGENT = "LinkSense/0.1"


class TokenAuthStyle(str, Enum):
    """How client credentials are presented to the token endpoint."""

    FORM = "form"
    BASIC = "basic"


class ApiAuthStyle(str, Enum):
    """How the access token is presented to the data API."""

    BEARER = "bearer"
    HEADER = "header"


class ProviderSpec(BaseModel):
    """Static OAuth and API description of one provider.

    Attributes:
        provider: Provider identifier (e.g., "slack")
        display_name: Human-readable provider name
        authorize_url: Authorization endpoint; may contain a {tenant} placeholder
        token_url: Token endpoint; may contain a {tenant} placeholder
        scopes: OAuth scopes to request
        scope_separator: Separator used to join scopes in the authorize URL
        extra_authorize_params: Provider-specific authorize URL parameters
        include_scope_in_token_request: Send the scope list with the code exchange
        token_auth: Client credential presentation at the token endpoint
        api_auth: Access token presentation at the data API
        api_auth_header: Header name used with ApiAuthStyle.HEADER
        requires_tenant: A tenant id must be configured (Microsoft)
        identity_required: A failed user-info call fails the connect flow
        supports_messages: Provider exposes chat messages
        supports_meetings: Provider exposes calendar meetings
        default_team_name: Team name stored when none can be discovered
    """

    provider: str
    display_name: str
    authorize_url: str
    token_url: str
    scopes: list[str]
    scope_separator: str = " "
    extra_authorize_params: dict[str, str] = Field(default_factory=dict)
    include_scope_in_token_request: bool = False
    token_auth: TokenAuthStyle = TokenAuthStyle.FORM
    api_auth: ApiAuthStyle = ApiAuthStyle.BEARER
    api_auth_header: str = "Authorization"
    requires_tenant: bool = False
    identity_required: bool = True
    supports_messages: bool = False
    supports_meetings: bool = False
    default_team_name: str = "Unknown Organization"

    def supports(self, kind: str) -> bool:
        """Check whether the provider exposes an entity kind ("messages" or "meetings")."""
        if kind == "messages":
            return self.supports_messages
        if kind == "meetings":
            return self.supports_meetings
        return False


class ScanPolicy(BaseModel):
    """Bounds for scanning containers within a single provider.

    Attributes:
        max_containers: Number of containers scanned, in provider order
        inter_call_delay: Seconds to wait between consecutive container calls
        max_pages: Pages followed per container
        page_size: Records requested per page
    """

    max_containers: int = Field(default=10, ge=0)
    inter_call_delay: float = Field(default=0.1, ge=0)
    max_pages: int = Field(default=1, ge=1)
    page_size: int = Field(default=100, ge=1)


class Container(BaseModel):
    """A channel, room or guild text channel that holds messages."""

    id: str
    name: str
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None

    def context(self) -> dict[str, Optional[str]]:
        """Container reference attached to raw records for the normalizer."""
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "parent_name": self.parent_name,
        }


class OAuthTokens(BaseModel):
    """Token endpoint response.

    Attributes:
        access_token: OAuth access token
        refresh_token: Optional refresh token
        token_type: Token type (usually "Bearer")
        expires_in: Token lifetime in seconds (optional)
        scope: Granted scope string
        raw: Full response body, for providers that return identity with the token
    """

    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: str = ""
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)


class ProviderIdentity(BaseModel):
    """The connected account as reported by the provider's user-info call."""

    user_id: Optional[str] = None
    user_name: Optional[str] = None
    email: Optional[str] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None


class Organization(BaseModel):
    """Team, workspace or organization discovered by a secondary call."""

    id: Optional[str] = None
    name: str


class RateLimitInfo(BaseModel):
    """Rate-limit headers observed on the most recent provider response."""

    remaining: Optional[int] = None
    reset: Optional[int] = None


class ProviderAdapter(ABC):
    """Base class for provider adapters.

    Adapters are created per aggregation run with a shared httpx client and
    hold no state beyond the last observed rate-limit headers.

    Attributes:
        spec: Static provider description
        default_policy: Container scan bounds used when none is injected
    """

    spec: ClassVar[ProviderSpec]
    default_policy: ClassVar[ScanPolicy] = ScanPolicy()

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[ScanPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: HTTP client used for every provider call
            policy: Container scan bounds (defaults to the provider's)
            sleep: Awaitable used for pacing between container calls
        """
        self._client = client
        self.policy = policy or self.default_policy
        self._sleep = sleep
        self.rate_limit: Optional[RateLimitInfo] = None

    @property
    def provider(self) -> str:
        return self.spec.provider

    # Identity -----------------------------------------------------------

    @abstractmethod
    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        """Look up the connected account.

        Raises:
            ProviderFetchError: If the user-info call fails
        """

    async def fetch_organization(self, tokens: OAuthTokens) -> Optional[Organization]:
        """Best-effort secondary lookup of the team or organization."""
        return None

    # Data ---------------------------------------------------------------

    async def list_containers(self, credential: Credential) -> list[Container]:
        return []

    async def list_messages(
        self,
        credential: Credential,
        container: Container,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        return []

    async def list_meetings(
        self, credential: Credential, options: DataIntegrationOptions
    ) -> list[dict[str, Any]]:
        return []

    async def fetch_messages(
        self, credential: Credential, options: DataIntegrationOptions
    ) -> list[dict[str, Any]]:
        """Scan containers serially and collect raw messages.

        Only the first ``policy.max_containers`` containers are scanned, with
        ``policy.inter_call_delay`` seconds between calls. A failure on a
        single container is logged and skipped; a failure listing the
        containers propagates.

        Args:
            credential: Active credential for this provider
            options: Resolved query options (limit is this provider's share)

        Returns:
            Raw message dicts with the source container attached

        Raises:
            ProviderFetchError: If the containers cannot be listed
        """
        containers = await self.list_containers(credential)
        if options.channels:
            wanted = set(options.channels)
            containers = [c for c in containers if c.id in wanted]
        containers = containers[: self.policy.max_containers]

        records: list[dict[str, Any]] = []
        for index, container in enumerate(containers):
            if index and self.policy.inter_call_delay:
                await self._sleep(self.policy.inter_call_delay)
            try:
                batch = await self.list_messages(credential, container, options)
            except ProviderFetchError as e:
                logger.warning(
                    "container_fetch_failed",
                    provider=self.provider,
                    container_id=container.id,
                    error=e.reason,
                )
                continue
            for record in batch:
                record[CONTAINER_KEY] = container.context()
            records.extend(batch)

        logger.debug(
            "provider_messages_fetched",
            provider=self.provider,
            containers=len(containers),
            records=len(records),
        )
        return records

    # HTTP helpers -------------------------------------------------------

    def auth_headers(self, access_token: str) -> dict[str, str]:
        """Build the data API authentication headers for a token."""
        if self.spec.api_auth == ApiAuthStyle.HEADER:
            return {self.spec.api_auth_header: access_token}
        return {"Authorization": f"Bearer {access_token}"}

    async def _get(
        self,
        access_token: Optional[str],
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET a provider endpoint and decode the JSON body.

        Returns:
            Decoded JSON, or None for an empty (204) response

        Raises:
            ProviderAuthError: On 401/403 or a missing token
            ProviderFetchError: On transport errors, other non-2xx statuses or invalid JSON
        """
        if not access_token:
            raise ProviderAuthError(self.provider, "no access token")

        request_headers = {
            **self.auth_headers(access_token),
            "User-Agent": USER_AGENT,
            **(headers or {}),
        }
        try:
            response = await self._client.get(url, params=params, headers=request_headers)
        except httpx.HTTPError as e:
            raise ProviderFetchError(self.provider, f"request failed: {e}") from e

        self._observe_rate_limit(response)

        if response.status_code in (401, 403):
            raise ProviderAuthError(self.provider, f"HTTP {response.status_code}")
        if response.status_code == 429:
            raise ProviderFetchError(self.provider, "rate limited", code="rate_limited")
        if response.is_error:
            raise ProviderFetchError(self.provider, f"HTTP {response.status_code}")
        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise ProviderFetchError(self.provider, "invalid JSON response") from e

    def _observe_rate_limit(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset = response.headers.get("X-RateLimit-Reset")
        if remaining is None and reset is None:
            return
        self.rate_limit = RateLimitInfo(
            remaining=_to_int(remaining),
            reset=_to_int(reset),
        )


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None
