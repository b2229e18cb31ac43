"""LINE WORKS adapter (API 2.0)."""

from typing import Any, Optional

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

WORKS_API = "https://www.worksapis.com/v1.0"


class LineWorksAdapter(ProviderAdapter):
    """Enterprise-messaging provider: channels and their messages."""

    spec = ProviderSpec(
        provider="line-works",
        display_name="LINE WORKS",
        authorize_url="https://auth.worksmobile.com/oauth2/v2.0/authorize",
        token_url="https://auth.worksmobile.com/oauth2/v2.0/token",
        scopes=["user.read", "user.profile.read", "user.email.read"],
        supports_messages=True,
    )
    default_policy = ScanPolicy(max_containers=10, inter_call_delay=0.2)

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._get(tokens.access_token, f"{WORKS_API}/users/me") or {}
        user_name = data.get("displayName")
        if not user_name and isinstance(data.get("userName"), dict):
            name = data["userName"]
            user_name = " ".join(p for p in (name.get("lastName"), name.get("firstName")) if p)
        return ProviderIdentity(
            user_id=data.get("userId"),
            user_name=user_name or None,
            email=data.get("email"),
            team_id=str(data["domainId"]) if data.get("domainId") else None,
        )

    async def fetch_organization(self, tokens: OAuthTokens) -> Optional[Organization]:
        data = await self._get(tokens.access_token, f"{WORKS_API}/domains/me") or {}
        name = data.get("domainName") or data.get("name")
        if not name:
            return None
        domain_id = data.get("domainId")
        return Organization(id=str(domain_id) if domain_id else None, name=name)

    async def list_containers(self, credential: Credential) -> list[Container]:
        data = await self._get(credential.access_token, f"{WORKS_API}/channels") or {}
        return [
            Container(
                id=str(channel["channelId"]),
                name=str(
                    channel.get("title") or channel.get("channelName") or channel["channelId"]
                ),
            )
            for channel in data.get("channels") or []
            if channel.get("channelId")
        ]

    async def list_messages(
        self,
        credential: Credential,
        container: Container,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": min(self.policy.page_size, options.limit)}
        if options.date_from:
            params["since"] = options.date_from.isoformat()
        if options.date_to:
            params["until"] = options.date_to.isoformat()

        messages: list[dict[str, Any]] = []
        for page in range(self.policy.max_pages):
            if page:
                await self._sleep(self.policy.inter_call_delay)
            data = (
                await self._get(
                    credential.access_token,
                    f"{WORKS_API}/channels/{container.id}/messages",
                    params=params,
                )
                or {}
            )
            messages.extend(data.get("messages") or [])
            cursor = (data.get("responseMetaData") or {}).get("nextCursor")
            if not cursor or len(messages) >= options.limit:
                break
            params["cursor"] = cursor
        return messages
