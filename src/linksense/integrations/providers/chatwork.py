"""ChatWork adapter.

ChatWork expects the token in its own ``X-ChatWorkToken`` header and reports
its rate limit in ``X-RateLimit-*`` response headers.
"""

from typing import Any

from linksense.integrations.providers.base import (
    ApiAuthStyle,
    Container,
    OAuthTokens,
    ProviderAdapter,
    ProviderIdentity,
    ProviderSpec,
    ScanPolicy,
    TokenAuthStyle,
)
from linksense.normalization.models import DataIntegrationOptions
from linksense.storage.credential_store import Credential

CHATWORK_API = "https://api.chatwork.com/v2"


class ChatworkAdapter(ProviderAdapter):
    """Chat-style provider: rooms and their latest messages."""

    spec = ProviderSpec(
        provider="chatwork",
        display_name="ChatWork",
        authorize_url="https://oauth.chatwork.com/authorize",
        token_url="https://oauth.chatwork.com/token",
        scopes=[
            "users.profile.me:read",
            "rooms.all:read",
            "rooms.messages:read",
            "rooms.members:read",
            "rooms.tasks:read",
        ],
        token_auth=TokenAuthStyle.BASIC,
        api_auth=ApiAuthStyle.HEADER,
        api_auth_header="X-ChatWorkToken",
        supports_messages=True,
    )
    default_policy = ScanPolicy(max_containers=10, inter_call_delay=0.1)

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._get(tokens.access_token, f"{CHATWORK_API}/me") or {}
        account_id = data.get("account_id")
        return ProviderIdentity(
            user_id=str(account_id) if account_id is not None else None,
            user_name=data.get("name"),
            email=data.get("mail") or data.get("login_mail"),
            team_id=str(data["organization_id"]) if data.get("organization_id") else None,
            team_name=data.get("organization_name"),
        )

    async def list_containers(self, credential: Credential) -> list[Container]:
        rooms = await self._get(credential.access_token, f"{CHATWORK_API}/rooms") or []
        return [
            Container(id=str(room["room_id"]), name=room.get("name") or str(room["room_id"]))
            for room in rooms
            if room.get("room_id") is not None
        ]

    async def list_messages(
        self,
        credential: Credential,
        container: Container,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        # force=1 returns the latest 100 messages instead of only unread ones
        messages = (
            await self._get(
                credential.access_token,
                f"{CHATWORK_API}/rooms/{container.id}/messages",
                params={"force": 1},
            )
            or []
        )
        return list(messages)
