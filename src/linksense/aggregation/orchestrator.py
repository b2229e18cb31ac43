"""Fan-out aggregation across a user's connected providers.

One aggregation run dispatches every connected provider that supports the
requested kind concurrently, normalizes what each returns, and merges the
results into a single list ordered newest first. A provider that fails or
times out is reported in ``errors``; it never fails the run.
"""

import asyncio
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, Field

from linksense.config import SUPPORTED_PROVIDERS
from linksense.errors import LinkSenseError, ProviderAuthError
from linksense.integrations.oauth.manager import OAuthIntegrationManager
from linksense.integrations.providers.base import ProviderAdapter, RateLimitInfo
from linksense.integrations.providers.registry import create_adapter, get_spec
from linksense.normalization.models import (
    DataIntegrationOptions,
    EntityKind,
    UnifiedActivity,
    UnifiedMeeting,
    UnifiedMessage,
)
from linksense.normalization.normalizer import normalize_batch, to_activity
from linksense.observability.logging import get_logger
from linksense.observability.metrics import get_metrics_collector
from linksense.storage.credential_store import Credential, CredentialStore

logger = get_logger(__name__)

Entity = Union[UnifiedMessage, UnifiedMeeting, UnifiedActivity]
AdapterFactory = Callable[[str, httpx.AsyncClient], ProviderAdapter]


def sort_key(entity: Entity) -> tuple[float, str, str]:
    """Newest first; ties broken by id, then provider, so order never depends on timing."""
    return (-entity.timestamp.timestamp(), entity.id, entity.service)


def merge_entities(batches: Iterable[Sequence[Entity]], limit: int) -> tuple[list[Entity], int]:
    """Merge per-provider batches into one ordered list.

    Returns:
        Tuple of (the first ``limit`` entities, total count before truncation)
    """
    merged = sorted((e for batch in batches for e in batch), key=sort_key)
    return merged[:limit], len(merged)


class AggregationResult(BaseModel):
    """Outcome of one aggregation run.

    Attributes:
        kind: Entity kind that was aggregated
        data: Merged entities, newest first
        errors: Failure reason per provider that did not contribute
        rate_limits: Last rate-limit headers observed per provider
        services: Providers dispatched, in canonical order
        total_count: Entities available before truncation
        has_more: More entities were available than returned
    """

    kind: EntityKind
    data: list[Any] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)
    rate_limits: dict[str, RateLimitInfo] = Field(default_factory=dict)
    services: list[str] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False

    @property
    def total_services(self) -> int:
        return len(self.services)

    @property
    def successful_services(self) -> int:
        return len([p for p in self.services if p not in self.errors])

    def to_response(self, include_metadata: bool = False) -> dict[str, Any]:
        """Serialize into the unified API envelope."""
        metadata: dict[str, Any] = {
            "totalServices": self.total_services,
            "successfulServices": self.successful_services,
        }
        if self.errors:
            metadata["errors"] = dict(self.errors)
        if self.rate_limits:
            metadata["rateLimits"] = {
                provider: info.model_dump(exclude_none=True)
                for provider, info in self.rate_limits.items()
            }
        return {
            "success": True,
            "data": [entity.to_response(include_metadata) for entity in self.data],
            "metadata": metadata,
            "pagination": {"hasMore": self.has_more, "totalCount": self.total_count},
        }


class CombinedResult(BaseModel):
    """Messages, meetings and activities fetched in one request."""

    messages: AggregationResult
    meetings: AggregationResult
    activities: AggregationResult

    def to_response(self, include_metadata: bool = False) -> dict[str, Any]:
        parts = {
            "messages": self.messages,
            "meetings": self.meetings,
            "activities": self.activities,
        }
        metadata = self.activities.to_response()["metadata"]
        return {
            "success": True,
            "data": {
                name: [entity.to_response(include_metadata) for entity in part.data]
                for name, part in parts.items()
            },
            "summary": {
                "totalMessages": self.messages.total_count,
                "totalMeetings": self.meetings.total_count,
                "totalActivities": self.activities.total_count,
            },
            "metadata": metadata,
            "pagination": {
                "hasMore": any(part.has_more for part in parts.values()),
                "totalCount": self.activities.total_count,
            },
        }


class _ProviderOutcome(BaseModel):
    provider: str
    entities: list[Any] = Field(default_factory=list)
    error: Optional[str] = None
    rate_limit: Optional[RateLimitInfo] = None


class AggregationOrchestrator:
    """Aggregates unified entities across a user's connected providers.

    Example:
        >>> orchestrator = AggregationOrchestrator(store, client, provider_timeout=20)
        >>> result = await orchestrator.fetch_unified("user-1", EntityKind.MESSAGES, options)
        >>> result.errors
        {'discord': 'timed out after 20s'}
    """

    def __init__(
        self,
        store: CredentialStore,
        client: httpx.AsyncClient,
        provider_timeout: float = 20.0,
        oauth_manager: Optional[OAuthIntegrationManager] = None,
        adapter_factory: AdapterFactory = create_adapter,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Credential store
            client: Shared HTTP client for provider calls
            provider_timeout: Seconds a single provider may take
            oauth_manager: Used to refresh rejected access tokens; refresh is skipped without it
            adapter_factory: Builds a fresh adapter per provider per run
            now: Clock used for the default date window
        """
        self._store = store
        self._client = client
        self._timeout = provider_timeout
        self._oauth = oauth_manager
        self._adapter_factory = adapter_factory
        self._now = now

    async def resolve_connected_providers(
        self, user_id: str, requested: Optional[Iterable[str]] = None
    ) -> list[str]:
        """List the user's active providers, optionally restricted to a subset.

        Args:
            user_id: User identifier
            requested: Provider ids to restrict to (None for all)

        Returns:
            Provider ids in canonical order

        Raises:
            UnsupportedProviderError: If a requested id is unknown
        """
        wanted = set(requested) if requested is not None else None
        return [c.provider for c in await self._active_credentials(user_id, wanted)]

    async def fetch_unified(
        self,
        user_id: str,
        kind: EntityKind,
        options: DataIntegrationOptions,
        providers: Optional[Iterable[str]] = None,
    ) -> AggregationResult:
        """Fetch one entity kind from every connected provider that supports it.

        The limit is split evenly across the dispatched providers (rounded
        up), then the merged list is truncated to the overall limit.

        Args:
            user_id: User identifier
            kind: EntityKind.MESSAGES or EntityKind.MEETINGS
            options: Query options
            providers: Optional subset of provider ids

        Returns:
            Merged result with per-provider errors
        """
        if kind not in (EntityKind.MESSAGES, EntityKind.MEETINGS):
            raise ValueError(f"fetch_unified supports messages and meetings, not {kind.value}")

        options = options.resolved(self._now())
        requested = set(providers) if providers is not None else None
        credentials = [
            c
            for c in await self._active_credentials(user_id, requested)
            if get_spec(c.provider).supports(kind.value)
        ]
        result = AggregationResult(kind=kind, services=[c.provider for c in credentials])
        if not credentials:
            return result

        per_provider = options.with_limit(math.ceil(options.limit / len(credentials)))
        outcomes = await asyncio.gather(
            *(self._fetch_provider(c, kind, per_provider) for c in credentials),
            return_exceptions=True,
        )

        batches: list[list[Any]] = []
        for credential, outcome in zip(credentials, outcomes):
            provider = credential.provider
            if isinstance(outcome, BaseException):
                logger.error(
                    "provider_fetch_crashed",
                    provider=provider,
                    kind=kind.value,
                    error=repr(outcome),
                )
                result.errors[provider] = f"unexpected error: {type(outcome).__name__}"
                continue
            if outcome.rate_limit is not None:
                result.rate_limits[provider] = outcome.rate_limit
            if outcome.error is not None:
                result.errors[provider] = outcome.error
                continue
            batches.append(outcome.entities)

        result.data, result.total_count = merge_entities(batches, options.limit)
        result.has_more = result.total_count > options.limit

        logger.info(
            "aggregation_completed",
            user_id=user_id,
            kind=kind.value,
            total_services=result.total_services,
            successful_services=result.successful_services,
            returned=len(result.data),
            total_count=result.total_count,
        )
        return result

    async def fetch_activities(
        self,
        user_id: str,
        options: DataIntegrationOptions,
        providers: Optional[Iterable[str]] = None,
    ) -> AggregationResult:
        """Fetch messages and meetings and project both onto one activity feed."""
        requested = list(providers) if providers is not None else None
        messages, meetings = await asyncio.gather(
            self.fetch_unified(user_id, EntityKind.MESSAGES, options, requested),
            self.fetch_unified(user_id, EntityKind.MEETINGS, options, requested),
        )
        return self._activities_from(messages, meetings, options.limit)

    async def fetch_all(
        self,
        user_id: str,
        options: DataIntegrationOptions,
        providers: Optional[Iterable[str]] = None,
    ) -> CombinedResult:
        """Fetch messages, meetings and activities, each with a third of the limit."""
        part = options.with_limit(math.ceil(options.limit / 3))
        requested = list(providers) if providers is not None else None
        messages, meetings = await asyncio.gather(
            self.fetch_unified(user_id, EntityKind.MESSAGES, part, requested),
            self.fetch_unified(user_id, EntityKind.MEETINGS, part, requested),
        )
        return CombinedResult(
            messages=messages,
            meetings=meetings,
            activities=self._activities_from(messages, meetings, part.limit),
        )

    def _activities_from(
        self, messages: AggregationResult, meetings: AggregationResult, limit: int
    ) -> AggregationResult:
        activities = [to_activity(e) for e in [*messages.data, *meetings.data]]
        data, total = merge_entities([activities], limit)

        errors: dict[str, str] = {}
        _merge_errors(errors, messages.errors)
        _merge_errors(errors, meetings.errors)
        dispatched = {*messages.services, *meetings.services}

        return AggregationResult(
            kind=EntityKind.ACTIVITIES,
            data=data,
            errors=errors,
            rate_limits={**messages.rate_limits, **meetings.rate_limits},
            services=[p for p in SUPPORTED_PROVIDERS if p in dispatched],
            total_count=messages.total_count + meetings.total_count,
            has_more=messages.has_more or meetings.has_more or total > limit,
        )

    async def _active_credentials(
        self, user_id: str, requested: Optional[set[str]]
    ) -> list[Credential]:
        if requested is not None:
            for provider in requested:
                get_spec(provider)
        by_provider = {
            c.provider: c
            for c in await self._store.list_active(user_id)
            if requested is None or c.provider in requested
        }
        return [by_provider[p] for p in SUPPORTED_PROVIDERS if p in by_provider]

    async def _fetch_provider(
        self,
        credential: Credential,
        kind: EntityKind,
        options: DataIntegrationOptions,
    ) -> _ProviderOutcome:
        provider = credential.provider
        adapter = self._adapter_factory(provider, self._client)
        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(
                self._fetch_raw(adapter, credential, kind, options), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            self._record(provider, kind, started, "timeout")
            logger.warning("provider_fetch_timeout", provider=provider, timeout=self._timeout)
            return _ProviderOutcome(
                provider=provider,
                error=f"timed out after {self._timeout:g}s",
                rate_limit=adapter.rate_limit,
            )
        except LinkSenseError as e:
            reason = getattr(e, "reason", e.message)
            self._record(provider, kind, started, "failed")
            logger.warning("provider_fetch_failed", provider=provider, error=reason)
            return _ProviderOutcome(provider=provider, error=reason, rate_limit=adapter.rate_limit)

        entities = [
            entity
            for entity in normalize_batch(
                provider, kind.value, raw, include_metadata=options.include_metadata
            )
            if options.contains(entity.timestamp)
        ]
        entities.sort(key=sort_key)
        self._record(provider, kind, started, "success")
        return _ProviderOutcome(
            provider=provider,
            entities=entities[: options.limit],
            rate_limit=adapter.rate_limit,
        )

    async def _fetch_raw(
        self,
        adapter: ProviderAdapter,
        credential: Credential,
        kind: EntityKind,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        """Call the adapter, refreshing the token once if the provider rejects it."""
        try:
            return await self._call_adapter(adapter, credential, kind, options)
        except ProviderAuthError:
            if self._oauth is None or not credential.refresh_token:
                raise
            logger.info("provider_token_rejected_refreshing", provider=credential.provider)
            credential = await self._oauth.refresh_credential(credential)
            return await self._call_adapter(adapter, credential, kind, options)

    @staticmethod
    async def _call_adapter(
        adapter: ProviderAdapter,
        credential: Credential,
        kind: EntityKind,
        options: DataIntegrationOptions,
    ) -> list[dict[str, Any]]:
        if kind == EntityKind.MEETINGS:
            return await adapter.list_meetings(credential, options)
        return await adapter.fetch_messages(credential, options)

    @staticmethod
    def _record(provider: str, kind: EntityKind, started: float, status: str) -> None:
        get_metrics_collector().record_provider_fetch(
            provider, kind.value, time.monotonic() - started, status
        )


def _merge_errors(target: dict[str, str], errors: dict[str, str]) -> None:
    for provider, reason in errors.items():
        if provider in target and target[provider] != reason:
            target[provider] = f"{target[provider]}; {reason}"
        else:
            target[provider] = reason
