"""Google Meet adapter (Google Calendar API).

Meet has no message surface; meetings are calendar events that carry
conference data, a hangout link or a meet.google.com location.
"""

from typing import Any

from linksense.integrations.providers.base import (
    OAuthTokens,
    ProviderAdapter,
    ProviderIdentity,
    ProviderSpec,
    ScanPolicy,
)
from linksense.normalization.models import DataIntegrationOptions
from linksense.storage.credential_store import Credential

CALENDAR_API = "https://www.googleapis.com/calendar/v3"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleMeetAdapter(ProviderAdapter):
    """Calendar/meeting provider: primary calendar events."""

    spec = ProviderSpec(
        provider="google-meet",
        display_name="Google Meet",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=[
            "https://www.googleapis.com/auth/calendar.readonly",
            "https://www.googleapis.com/auth/calendar.events.readonly",
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
        ],
        extra_authorize_params={
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        },
        supports_meetings=True,
        default_team_name="Google Workspace",
    )
    default_policy = ScanPolicy(max_containers=0, inter_call_delay=0.1, max_pages=2, page_size=250)

    async def fetch_identity(self, tokens: OAuthTokens) -> ProviderIdentity:
        data = await self._get(tokens.access_token, USERINFO_URL) or {}
        return ProviderIdentity(
            user_id=data.get("id"),
            user_name=data.get("name") or data.get("email"),
            email=data.get("email"),
            team_id=data.get("hd"),
            team_name=data.get("hd"),
        )

    async def list_meetings(
        self, credential: Credential, options: DataIntegrationOptions
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            # Google cannot order descending; read whole pages and let the
            # newest-first merge pick the latest meetings.
            "maxResults": self.policy.page_size,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if options.date_from:
            params["timeMin"] = options.date_from.isoformat()
        if options.date_to:
            params["timeMax"] = options.date_to.isoformat()

        events: list[dict[str, Any]] = []
        for page in range(self.policy.max_pages):
            if page:
                await self._sleep(self.policy.inter_call_delay)
            data = (
                await self._get(
                    credential.access_token,
                    f"{CALENDAR_API}/calendars/primary/events",
                    params=params,
                )
                or {}
            )
            events.extend(data.get("items") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token
        return events
