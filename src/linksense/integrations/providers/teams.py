"""Microsoft Teams adapter (Microsoft Graph).

Channel messages come from the user's joined teams; meetings come from the
user's calendar, restricted to events that carry an online meeting.
"""

from typing import Any, Optional

from linksense.errors import ProviderFetchError
from linksense.integrations.providers.base import (
    Container,
    OAuthTokens,
    Organization,
    ProviderAdapter,
    ProviderIdentity,
    ProviderSpec,
    ScanPolicy,
)
from linksense.normalization.models import DataIntegrationOptions
from linksense.observability.logging import get_logger
from linksense.storage.credential_store import Credential

logger = get_logger(__name__)

GRAPH_API = "https://graph.microsoft.com/v1.0"
MICROSOFT_LOGIN = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0"

# Graph filters compare against naive dateTime strings.
GRAPH_DATETIME = "%Y-%m-%dT%H:%M:%S"


class TeamsAdapter(ProviderAdapter):
    """Enterprise-chat provider: channel messages and calendar meetings."""

    spec = ProviderSpec(
        provider="teams",
        display_name="Microsoft Teams",
        authorize_url=f"{MICROSOFT_LOGIN}/authorize",
        token_url=f"{MICROSOFT_LOGIN}/token",
        scopes=[
            "User.Read",
            "Team.ReadBasic.All",
            "Chat.Read",
            "OnlineMeetings.Read",
            "Presence.Read",
            "ChannelMessage.Read.All",
            "TeamMember.Read.All",
            "Calendars.Read",
            "offline_access",
        ],
        extra_authorize_params={"response_mode": "query", "prompt": "consent"},
        include_scope_in_token_request=True,
        requires_tenant=True,
        supports_messages=True,
        supports_meetings=True,
    )
    default_policy = ScanPolicy(max_containers=50, inter_call_delay=0.2, page_size=50)

    max_teams = 5
    channels_per_team = 10
    team_delay = 0.3

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._get(tokens.access_token, f"{GRAPH_API}/me") or {}
        return ProviderIdentity(
            user_id=data.get("id"),
            user_name=data.get("displayName") or data.get("userPrincipalName"),
            email=data.get("mail") or data.get("userPrincipalName"),
            team_name=data.get("companyName"),
        )

    async def fetch_organization(self, tokens: OAuthTokens) -> Optional[Organization]:
        data = await self._get(tokens.access_token, f"{GRAPH_API}/organization") or {}
        organizations = data.get("value") or []
        if not organizations or not organizations[0].get("displayName"):
            return None
        return Organization(id=organizations[0].get("id"), name=organizations[0]["displayName"])

    async def list_containers(self, credential: Credential) -> list[Container]:
        data = await self._get(credential.access_token, f"{GRAPH_API}/me/joinedTeams") or {}
        teams = data.get("value") or []

        containers: list[Container] = []
        for index, team in enumerate(teams[: self.max_teams]):
            if index:
                await self._sleep(self.team_delay)
            try:
                channels = (
                    await self._get(
                        credential.access_token, f"{GRAPH_API}/teams/{team['id']}/channels"
                    )
                    or {}
                ).get("value") or []
            except ProviderFetchError as e:
                logger.warning("team_channels_failed", team_id=team.get("id"), error=e.reason)
                continue

            containers.extend(
                Container(
                    id=channel["id"],
                    name=channel.get("displayName") or channel["id"],
                    parent_id=team["id"],
                    parent_name=team.get("displayName"),
                )
                for channel in channels[: self.channels_per_team]
            )
        return containers

    async def list_messages(
        self,
        credential: Credential,
        container: Container,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        url: Optional[str] = (
            f"{GRAPH_API}/teams/{container.parent_id}/channels/{container.id}/messages"
        )
        params: Optional[dict[str, Any]] = {"$top": min(self.policy.page_size, options.limit)}
        return await self._collect_pages(credential, url, params, options.limit)

    async def list_meetings(
        self, credential: Credential, options: DataIntegrationOptions
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "$top": min(self.policy.page_size, options.limit),
            "$orderby": "start/dateTime desc",
        }
        if options.date_from and options.date_to:
            params["$filter"] = (
                f"start/dateTime ge '{options.date_from.strftime(GRAPH_DATETIME)}' "
                f"and end/dateTime le '{options.date_to.strftime(GRAPH_DATETIME)}'"
            )
        return await self._collect_pages(
            credential,
            f"{GRAPH_API}/me/calendar/events",
            params,
            options.limit,
            headers={"Prefer": 'outlook.timezone="UTC"'},
        )

    async def _collect_pages(
        self,
        credential: Credential,
        url: Optional[str],
        params: Optional[dict[str, Any]],
        limit: int,
        headers: Optional[dict[str, str]] = None,
    ) -> list[dict[str, Any]]:
        """Follow @odata.nextLink up to the page budget."""
        records: list[dict[str, Any]] = []
        for page in range(self.policy.max_pages):
            if url is None:
                break
            if page:
                await self._sleep(self.policy.inter_call_delay)
            data = (
                await self._get(credential.access_token, url, params=params, headers=headers)
                or {}
            )
            records.extend(data.get("value") or [])
            if len(records) >= limit:
                break
            # nextLink already carries the query string
            url, params = data.get("@odata.nextLink"), None
        return records
