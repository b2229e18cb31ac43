"""Discord adapter.

Messages live in guild text channels, so the container listing walks the
user's guilds first and then each guild's channels.
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

DISCORD_API = "https://discord.com/api/v10"

# Channel type 0 is GUILD_TEXT.
TEXT_CHANNEL_TYPE = 0


class DiscordAdapter(ProviderAdapter):
    """Voice/guild-style provider: text channels of the user's guilds."""

    spec = ProviderSpec(
        provider="discord",
        display_name="Discord",
        authorize_url="https://discord.com/api/oauth2/authorize",
        token_url="https://discord.com/api/oauth2/token",
        scopes=["identify", "email", "guilds", "connections"],
        extra_authorize_params={"prompt": "consent"},
        supports_messages=True,
    )
    default_policy = ScanPolicy(max_containers=50, inter_call_delay=0.1, page_size=50)

    max_guilds = 5
    channels_per_guild = 10
    guild_delay = 0.2

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._get(tokens.access_token, f"{DISCORD_API}/users/@me") or {}
        return ProviderIdentity(
            user_id=data.get("id"),
            user_name=data.get("global_name") or data.get("username"),
            email=data.get("email"),
        )

    async def fetch_organization(self, tokens: OAuthTokens) -> Optional[Organization]:
        guilds = await self._get(tokens.access_token, f"{DISCORD_API}/users/@me/guilds") or []
        if not guilds:
            return None
        return Organization(id=guilds[0].get("id"), name=guilds[0].get("name") or "Discord")

    async def list_containers(self, credential: Credential) -> list[Container]:
        guilds = await self._get(credential.access_token, f"{DISCORD_API}/users/@me/guilds") or []

        containers: list[Container] = []
        for index, guild in enumerate(guilds[: self.max_guilds]):
            if index:
                await self._sleep(self.guild_delay)
            try:
                channels = (
                    await self._get(
                        credential.access_token, f"{DISCORD_API}/guilds/{guild['id']}/channels"
                    )
                    or []
                )
            except ProviderFetchError as e:
                logger.warning("guild_channels_failed", guild_id=guild.get("id"), error=e.reason)
                continue

            text_channels = [c for c in channels if c.get("type") == TEXT_CHANNEL_TYPE]
            containers.extend(
                Container(
                    id=channel["id"],
                    name=channel.get("name") or channel["id"],
                    parent_id=guild["id"],
                    parent_name=guild.get("name"),
                )
                for channel in text_channels[: self.channels_per_guild]
            )
        return containers

    async def list_messages(
        self,
        credential: Credential,
        container: Container,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        page_size = min(self.policy.page_size, options.limit)
        params: dict[str, Any] = {"limit": page_size}

        messages: list[dict[str, Any]] = []
        for page in range(self.policy.max_pages):
            if page:
                await self._sleep(self.policy.inter_call_delay)
            batch = (
                await self._get(
                    credential.access_token,
                    f"{DISCORD_API}/channels/{container.id}/messages",
                    params=params,
                )
                or []
            )
            messages.extend(batch)
            if len(batch) < page_size or len(messages) >= options.limit:
                break
            params["before"] = batch[-1]["id"]
        return messages
