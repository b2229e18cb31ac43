"""Zoom adapter.

Zoom is connect-only: the service stores the credential and account
identity but exposes no Zoom messages or meetings in aggregation.
"""

from linksense.integrations.providers.base import (
    OAuthTokens,
    ProviderAdapter,
    ProviderIdentity,
    ProviderSpec,
    TokenAuthStyle,
)

ZOOM_API = "https://api.zoom.us/v2"


class ZoomAdapter(ProviderAdapter):
    """Webinar-style provider."""

    spec = ProviderSpec(
        provider="zoom",
        display_name="Zoom",
        authorize_url="https://zoom.us/oauth/authorize",
        token_url="https://zoom.us/oauth/token",
        scopes=[
            "meeting:read",
            "webinar:read",
            "recording:read",
            "report:read",
            "user:read",
            "account:read",
            "dashboard:read",
        ],
        token_auth=TokenAuthStyle.BASIC,
        default_team_name="Zoom Account",
    )

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._get(tokens.access_token, f"{ZOOM_API}/users/me") or {}
        full_name = " ".join(p for p in (data.get("first_name"), data.get("last_name")) if p)
        return ProviderIdentity(
            user_id=data.get("id"),
            user_name=data.get("display_name") or full_name or data.get("email"),
            email=data.get("email"),
            team_id=data.get("account_id"),
        )
