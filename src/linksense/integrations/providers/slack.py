"""Slack adapter.

Slack's Web API answers HTTP 200 for application errors and reports them
in the body as ``{"ok": false, "error": "..."}``.
"""

from typing import Any, Optional

from linksense.errors import ProviderAuthError, ProviderFetchError
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
from linksense.storage.credential_store import Credential

SLACK_API = "https://slack.com/api"

_AUTH_ERRORS = {"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive"}


class SlackAdapter(ProviderAdapter):
    """Team-chat provider: public channels and their history."""

    spec = ProviderSpec(
        provider="slack",
        display_name="Slack",
        authorize_url="https://slack.com/oauth/v2/authorize",
        token_url=f"{SLACK_API}/oauth.v2.access",
        scopes=["channels:read", "channels:history", "chat:write", "users:read", "team:read"],
        scope_separator=",",
        identity_required=False,
        supports_messages=True,
    )
    default_policy = ScanPolicy(max_containers=20, inter_call_delay=0.1, max_pages=3, page_size=100)

    async def _call(
        self, access_token: Optional[str], method: str, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        data = await self._get(access_token, f"{SLACK_API}/{method}", params=params) or {}
        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            if error in _AUTH_ERRORS:
                raise ProviderAuthError(self.provider, error)
            raise ProviderFetchError(self.provider, f"{method} failed: {error}")
        return data

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._call(tokens.access_token, "auth.test")
        return ProviderIdentity(
            user_id=data.get("user_id"),
            user_name=data.get("user"),
            team_id=data.get("team_id"),
            team_name=data.get("team"),
        )

    async def fetch_organization(self, tokens: OAuthTokens) -> Optional[Organization]:
        # The token response already names the workspace.
        team = tokens.raw.get("team") or {}
        if not team.get("name"):
            return None
        return Organization(id=team.get("id"), name=team["name"])

    async def list_containers(self, credential: Credential) -> list[Container]:
        data = await self._call(
            credential.access_token,
            "conversations.list",
            params={"limit": 200, "exclude_archived": "true", "types": "public_channel"},
        )
        return [
            Container(id=channel["id"], name=channel.get("name") or channel["id"])
            for channel in data.get("channels", [])
            if channel.get("id")
        ]

    async def list_messages(
        self,
        credential: Credential,
        container: Container,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "channel": container.id,
            "limit": min(self.policy.page_size, options.limit),
        }
        if options.date_from:
            params["oldest"] = f"{options.date_from.timestamp():.6f}"
        if options.date_to:
            params["latest"] = f"{options.date_to.timestamp():.6f}"

        messages: list[dict[str, Any]] = []
        for page in range(self.policy.max_pages):
            if page:
                await self._sleep(self.policy.inter_call_delay)
            data = await self._call(credential.access_token, "conversations.history", params)
            messages.extend(data.get("messages", []))

            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not data.get("has_more") or not cursor or len(messages) >= options.limit:
                break
            params["cursor"] = cursor
        return messages
