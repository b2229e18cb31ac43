"""Registry of provider adapters keyed by provider id."""

import asyncio
from typing import Optional

import httpx

from linksense.config import SUPPORTED_PROVIDERS
from linksense.errors import UnsupportedProviderError
from linksense.integrations.providers.base import (
    ProviderAdapter,
    ProviderSpec,
    ScanPolicy,
    SleepFunc,
)
from linksense.integrations.providers.chatwork import ChatworkAdapter
from linksense.integrations.providers.discord import DiscordAdapter
from linksense.integrations.providers.google_meet import GoogleMeetAdapter
from linksense.integrations.providers.line_works import LineWorksAdapter
from linksense.integrations.providers.slack import SlackAdapter
from linksense.integrations.providers.teams import TeamsAdapter
from linksense.integrations.providers.zoom import ZoomAdapter

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    adapter.spec.provider: adapter
    for adapter in (
        ChatworkAdapter,
        SlackAdapter,
        DiscordAdapter,
        TeamsAdapter,
        GoogleMeetAdapter,
        ZoomAdapter,
        LineWorksAdapter,
    )
}


def get_adapter_class(provider: str) -> type[ProviderAdapter]:
    """Look up the adapter class for a provider.

    Raises:
        UnsupportedProviderError: If the provider id is unknown
    """
    try:
        return ADAPTERS[provider]
    except KeyError:
        raise UnsupportedProviderError(provider, SUPPORTED_PROVIDERS) from None


def get_spec(provider: str) -> ProviderSpec:
    return get_adapter_class(provider).spec


def create_adapter(
    provider: str,
    client: httpx.AsyncClient,
    policy: Optional[ScanPolicy] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> ProviderAdapter:
    """Instantiate the adapter for a provider.

    Args:
        provider: Provider identifier
        client: Shared HTTP client
        policy: Scan bounds overriding the provider default
        sleep: Pacing awaitable

    Returns:
        A fresh adapter instance
    """
    return get_adapter_class(provider)(client, policy=policy, sleep=sleep)


def providers_supporting(kind: str) -> list[str]:
    """Provider ids exposing an entity kind, in canonical order."""
    return [p for p in SUPPORTED_PROVIDERS if ADAPTERS[p].spec.supports(kind)]
