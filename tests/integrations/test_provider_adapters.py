"""Tests for provider adapters and the adapter registry."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from linksense.config import SUPPORTED_PROVIDERS
from linksense.errors import ProviderAuthError, ProviderFetchError, UnsupportedProviderError
from linksense.integrations.providers.base import Container, ProviderAdapter, ScanPolicy
from linksense.integrations.providers.chatwork import ChatworkAdapter
from linksense.integrations.providers.discord import DiscordAdapter
from linksense.integrations.providers.google_meet import GoogleMeetAdapter
from linksense.integrations.providers.registry import (
    ADAPTERS,
    create_adapter,
    get_spec,
    providers_supporting,
)
from linksense.integrations.providers.slack import SlackAdapter
from linksense.integrations.providers.teams import TeamsAdapter
from linksense.normalization.models import CONTAINER_KEY, DataIntegrationOptions
from linksense.storage.credential_store import Credential

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _credential(provider: str) -> Credential:
    return Credential(user_id="user-1", provider=provider, access_token=f"{provider}-token")


def _options(**overrides) -> DataIntegrationOptions:
    return DataIntegrationOptions(**overrides).resolved(NOW)


def _slack_channels(*ids: str) -> dict:
    return {"ok": True, "channels": [{"id": c, "name": f"name-{c}"} for c in ids]}


class TestRegistry:
    """Tests for the adapter registry."""

    def test_registry_should_cover_every_provider_in_order(self) -> None:
        """Every supported provider has an adapter, in canonical order."""
        assert list(ADAPTERS) == list(SUPPORTED_PROVIDERS)

    def test_providers_supporting_should_split_by_kind(self) -> None:
        """Message and meeting capabilities follow the provider specs."""
        assert providers_supporting("messages") == [
            "chatwork",
            "slack",
            "discord",
            "teams",
            "line-works",
        ]
        assert providers_supporting("meetings") == ["teams", "google-meet"]

    def test_adapter_without_identity_lookup_should_not_instantiate(self, make_client) -> None:
        """Every adapter must implement the identity lookup."""

        class Incomplete(ProviderAdapter):
            spec = get_spec("slack")

        with pytest.raises(TypeError):
            Incomplete(make_client(lambda request: httpx.Response(404)))

    def test_unknown_provider_should_raise(self) -> None:
        """Unknown ids raise with the supported list."""
        with pytest.raises(UnsupportedProviderError):
            get_spec("myspace")

    def test_create_adapter_should_apply_policy(self, make_client) -> None:
        """Injected scan policies override the provider default."""
        policy = ScanPolicy(max_containers=1)

        adapter = create_adapter("slack", make_client(lambda r: httpx.Response(200)), policy=policy)

        assert isinstance(adapter, SlackAdapter)
        assert adapter.policy.max_containers == 1


class TestProviderGet:
    """Tests for status handling shared by every adapter."""

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_statuses_should_raise_auth_error(self, make_client, status: int) -> None:
        """Rejected tokens surface as ProviderAuthError."""
        adapter = DiscordAdapter(make_client(lambda r: httpx.Response(status)))

        with pytest.raises(ProviderAuthError):
            await adapter._get("token", "https://discord.com/api/v10/users/@me")

    async def test_rate_limited_should_raise_with_code(self, make_client) -> None:
        """429 responses are reported as rate limited."""
        adapter = DiscordAdapter(make_client(lambda r: httpx.Response(429)))

        with pytest.raises(ProviderFetchError) as exc_info:
            await adapter._get("token", "https://discord.com/api/v10/users/@me")

        assert exc_info.value.code == "rate_limited"

    async def test_server_error_should_raise_fetch_error(self, make_client) -> None:
        """Other error statuses carry the status in the reason."""
        adapter = DiscordAdapter(make_client(lambda r: httpx.Response(503)))

        with pytest.raises(ProviderFetchError) as exc_info:
            await adapter._get("token", "https://discord.com/api/v10/users/@me")

        assert exc_info.value.reason == "HTTP 503"

    async def test_transport_error_should_raise_fetch_error(self, make_client) -> None:
        """Connection failures become fetch errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter = DiscordAdapter(make_client(handler))

        with pytest.raises(ProviderFetchError, match="request failed"):
            await adapter._get("token", "https://discord.com/api/v10/users/@me")

    async def test_missing_token_should_raise_auth_error(self, make_client) -> None:
        """A disconnected credential has no token to send."""
        adapter = DiscordAdapter(make_client(lambda r: httpx.Response(200)))

        with pytest.raises(ProviderAuthError, match="no access token"):
            await adapter._get(None, "https://discord.com/api/v10/users/@me")

    async def test_no_content_should_return_none(self, make_client) -> None:
        """Empty responses decode to None."""
        adapter = DiscordAdapter(make_client(lambda r: httpx.Response(204)))

        assert await adapter._get("token", "https://discord.com/api/v10/users/@me") is None

    async def test_rate_limit_headers_should_be_recorded(self, make_client) -> None:
        """The last observed rate-limit headers are kept on the adapter."""
        adapter = DiscordAdapter(
            make_client(
                lambda r: httpx.Response(
                    200,
                    json={},
                    headers={"X-RateLimit-Remaining": "4", "X-RateLimit-Reset": "1710072000.5"},
                )
            )
        )

        await adapter._get("token", "https://discord.com/api/v10/users/@me")

        assert adapter.rate_limit is not None
        assert adapter.rate_limit.remaining == 4
        assert adapter.rate_limit.reset == 1710072000

    async def test_header_auth_provider_should_send_token_header(self, make_client) -> None:
        """ChatWork takes the token in its own header instead of a bearer token."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await ChatworkAdapter(make_client(handler)).list_containers(_credential("chatwork"))

        assert seen[0].headers["X-ChatWorkToken"] == "chatwork-token"
        assert "Authorization" not in seen[0].headers


class TestSlackAdapter:
    """Tests for the Slack container scan."""

    async def test_fetch_messages_should_scan_bounded_channels_with_pacing(
        self, make_client, sleep_recorder
    ) -> None:
        """Only the first channels are scanned, with a delay between calls."""
        history_calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/conversations.list":
                return httpx.Response(200, json=_slack_channels("C1", "C2", "C3"))
            channel = request.url.params["channel"]
            history_calls.append(channel)
            return httpx.Response(
                200,
                json={"ok": True, "messages": [{"ts": "1710000000.000100", "text": channel}]},
            )

        adapter = SlackAdapter(
            make_client(handler),
            policy=ScanPolicy(max_containers=2, inter_call_delay=0.5),
            sleep=sleep_recorder,
        )

        records = await adapter.fetch_messages(_credential("slack"), _options())

        assert history_calls == ["C1", "C2"]
        assert sleep_recorder.delays == [0.5]
        assert [r[CONTAINER_KEY]["id"] for r in records] == ["C1", "C2"]
        assert records[0][CONTAINER_KEY]["name"] == "name-C1"

    async def test_fetch_messages_should_read_every_channel_past_the_limit(
        self, make_client, sleep_recorder
    ) -> None:
        """Later channels are still read once earlier ones fill the limit."""
        history_calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/conversations.list":
                return httpx.Response(200, json=_slack_channels("C_OLD", "C_NEW"))
            channel = request.url.params["channel"]
            history_calls.append(channel)
            base = 1709892000 if channel == "C_OLD" else 1710071940
            messages = [{"ts": f"{base + offset}.000100"} for offset in (0, 1)]
            return httpx.Response(200, json={"ok": True, "messages": messages})

        adapter = SlackAdapter(make_client(handler), sleep=sleep_recorder)

        records = await adapter.fetch_messages(_credential("slack"), _options(limit=2))

        assert history_calls == ["C_OLD", "C_NEW"]
        assert len(records) == 4

    async def test_history_should_send_window_bounds(self, make_client, sleep_recorder) -> None:
        """The date window is passed as Slack oldest/latest timestamps."""
        params: list[httpx.QueryParams] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/conversations.list":
                return httpx.Response(200, json=_slack_channels("C1"))
            params.append(request.url.params)
            return httpx.Response(200, json={"ok": True, "messages": []})

        adapter = SlackAdapter(make_client(handler), sleep=sleep_recorder)
        await adapter.fetch_messages(_credential("slack"), _options(limit=25))

        assert params[0]["latest"] == f"{NOW.timestamp():.6f}"
        assert float(params[0]["oldest"]) == NOW.timestamp() - 7 * 24 * 3600
        assert params[0]["limit"] == "25"

    async def test_failed_channel_should_be_skipped(self, make_client, sleep_recorder) -> None:
        """A single failing channel does not fail the provider."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/conversations.list":
                return httpx.Response(200, json=_slack_channels("C1", "C2"))
            if request.url.params["channel"] == "C1":
                return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
            return httpx.Response(200, json={"ok": True, "messages": [{"ts": "1.0"}]})

        adapter = SlackAdapter(make_client(handler), sleep=sleep_recorder)

        records = await adapter.fetch_messages(_credential("slack"), _options())

        assert [r[CONTAINER_KEY]["id"] for r in records] == ["C2"]

    async def test_invalid_auth_body_should_raise_auth_error(
        self, make_client, sleep_recorder
    ) -> None:
        """Slack's in-body auth errors map to ProviderAuthError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "error": "invalid_auth"})

        adapter = SlackAdapter(make_client(handler), sleep=sleep_recorder)

        with pytest.raises(ProviderAuthError):
            await adapter.fetch_messages(_credential("slack"), _options())

    async def test_channel_filter_should_restrict_scan(self, make_client, sleep_recorder) -> None:
        """Requested channel ids limit which containers are read."""
        history_calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/conversations.list":
                return httpx.Response(200, json=_slack_channels("C1", "C2", "C3"))
            history_calls.append(request.url.params["channel"])
            return httpx.Response(200, json={"ok": True, "messages": []})

        adapter = SlackAdapter(make_client(handler), sleep=sleep_recorder)
        await adapter.fetch_messages(_credential("slack"), _options(channels=["C3"]))

        assert history_calls == ["C3"]


class TestDiscordAdapter:
    """Tests for the Discord guild walk."""

    async def test_list_containers_should_keep_text_channels(
        self, make_client, sleep_recorder
    ) -> None:
        """Only guild text channels become containers, tagged with their guild."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v10/users/@me/guilds":
                return httpx.Response(200, json=[{"id": "G1", "name": "Gamers"}])
            return httpx.Response(
                200,
                json=[
                    {"id": "100", "name": "general", "type": 0},
                    {"id": "101", "name": "voice", "type": 2},
                ],
            )

        adapter = DiscordAdapter(make_client(handler), sleep=sleep_recorder)

        containers = await adapter.list_containers(_credential("discord"))

        assert [(c.id, c.parent_id, c.parent_name) for c in containers] == [
            ("100", "G1", "Gamers")
        ]

    async def test_list_messages_should_page_with_before(
        self, make_client, sleep_recorder
    ) -> None:
        """Full pages continue from the oldest message id."""
        befores: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            befores.append(request.url.params.get("before"))
            if "before" not in request.url.params:
                return httpx.Response(200, json=[{"id": "9"}, {"id": "8"}])
            return httpx.Response(200, json=[{"id": "7"}])

        adapter = DiscordAdapter(
            make_client(handler),
            policy=ScanPolicy(max_pages=3, page_size=2, inter_call_delay=0.1),
            sleep=sleep_recorder,
        )
        container = Container(id="100", name="general", parent_id="G1")

        messages = await adapter.list_messages(_credential("discord"), container, _options())

        assert [m["id"] for m in messages] == ["9", "8", "7"]
        assert befores == [None, "8"]
        assert sleep_recorder.delays == [0.1]


class TestTeamsAdapter:
    """Tests for Microsoft Graph paging."""

    async def test_list_meetings_should_follow_next_link(
        self, make_client, sleep_recorder
    ) -> None:
        """Calendar pages are followed through @odata.nextLink."""
        requests: list[httpx.Request] = []
        next_link = "https://graph.microsoft.com/v1.0/me/calendar/events?$skip=1"

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if "$skip" in request.url.params:
                return httpx.Response(200, json={"value": [{"id": "e2"}]})
            return httpx.Response(
                200, json={"value": [{"id": "e1"}], "@odata.nextLink": next_link}
            )

        adapter = TeamsAdapter(
            make_client(handler), policy=ScanPolicy(max_pages=3), sleep=sleep_recorder
        )

        events = await adapter.list_meetings(_credential("teams"), _options())

        assert [e["id"] for e in events] == ["e1", "e2"]
        assert requests[1].url.params.get("$skip") == "1"
        assert "$top" not in requests[1].url.params
        assert "$filter" in requests[0].url.params
        assert requests[0].url.params["$orderby"] == "start/dateTime desc"
        assert requests[0].headers["Prefer"] == 'outlook.timezone="UTC"'


class TestGoogleMeetAdapter:
    """Tests for Google Calendar paging."""

    async def test_list_meetings_should_follow_page_token(
        self, make_client, sleep_recorder
    ) -> None:
        """Calendar pages are followed through nextPageToken within the page budget."""
        tokens: list = []
        time_mins: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            tokens.append(request.url.params.get("pageToken"))
            time_mins.append(request.url.params.get("timeMin"))
            if "pageToken" not in request.url.params:
                return httpx.Response(200, json={"items": [{"id": "a"}], "nextPageToken": "p2"})
            return httpx.Response(200, json={"items": [{"id": "b"}], "nextPageToken": "p3"})

        adapter = GoogleMeetAdapter(make_client(handler), sleep=sleep_recorder)

        events = await adapter.list_meetings(_credential("google-meet"), _options())

        assert [e["id"] for e in events] == ["a", "b"]
        assert tokens == [None, "p2"]
        assert time_mins[0] == (NOW - timedelta(days=7)).isoformat()
