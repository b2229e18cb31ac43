"""Unified data query routes.

All routes take the same query options (``dateFrom``, ``dateTo``, ``limit``,
``includeMetadata``) and return the unified envelope
``{success, data, metadata, pagination}``. A provider that fails is listed
in ``metadata.errors``; it never fails the request.
"""

import asyncio
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from linksense.aggregation.analytics import build_analytics
from linksense.aggregation.orchestrator import AggregationOrchestrator
from linksense.api.dependencies import get_current_user, get_orchestrator
from linksense.errors import UnsupportedDataTypeError
from linksense.integrations.providers.registry import get_spec
from linksense.normalization.models import DataIntegrationOptions, EntityKind
from linksense.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/data-integration", tags=["data-integration"])

NO_SERVICES = {
    "success": False,
    "error": "No integrated services found",
    "availableServices": [],
}


def query_options(
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    limit: int = Query(100, ge=1, le=1000),
    include_metadata: bool = Query(False, alias="includeMetadata"),
    channels: Optional[str] = Query(None, description="Comma-separated container ids"),
) -> DataIntegrationOptions:
    """Build query options from the shared query parameters."""
    return DataIntegrationOptions(
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        include_metadata=include_metadata,
        channels=_split(channels),
    )


def _split(value: Optional[str]) -> Optional[list[str]]:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


@router.get("/unified")
async def unified_data(
    kind: EntityKind = Query(EntityKind.MESSAGES, alias="type"),
    services: Optional[str] = Query(None, description="Comma-separated provider ids"),
    options: DataIntegrationOptions = Depends(query_options),
    user_id: str = Depends(get_current_user),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Aggregate messages, meetings, activities, or all three across providers.

    Example:
        >>> GET /api/data-integration/unified?type=messages&limit=50
        >>> {
        >>>   "success": true,
        >>>   "data": [{"id": "1700000000.000100", "service": "slack", ...}],
        >>>   "metadata": {"totalServices": 2, "successfulServices": 1,
        >>>                "errors": {"discord": "timed out after 20s"}},
        >>>   "pagination": {"hasMore": false, "totalCount": 12}
        >>> }
    """
    requested = _split(services)
    connected = await orchestrator.resolve_connected_providers(user_id, requested)
    if not connected:
        return NO_SERVICES

    logger.info(
        "unified_query",
        user_id=user_id,
        kind=kind.value,
        services=connected,
        limit=options.limit,
    )
    if kind == EntityKind.ALL:
        combined = await orchestrator.fetch_all(user_id, options, connected)
        return combined.to_response(options.include_metadata)
    if kind == EntityKind.ACTIVITIES:
        result = await orchestrator.fetch_activities(user_id, options, connected)
    else:
        result = await orchestrator.fetch_unified(user_id, kind, options, connected)
    return result.to_response(options.include_metadata)


@router.get("/analytics")
async def analytics(
    services: Optional[str] = Query(None, description="Comma-separated provider ids"),
    options: DataIntegrationOptions = Depends(query_options),
    user_id: str = Depends(get_current_user),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Statistics, cross-provider analysis and data quality over the fetched window."""
    connected = await orchestrator.resolve_connected_providers(user_id, _split(services))
    if not connected:
        return NO_SERVICES

    messages, meetings = await asyncio.gather(
        orchestrator.fetch_unified(user_id, EntityKind.MESSAGES, options, connected),
        orchestrator.fetch_unified(user_id, EntityKind.MEETINGS, options, connected),
    )
    errors = {**messages.errors, **meetings.errors}
    metadata: dict[str, Any] = {
        "totalServices": len(connected),
        "successfulServices": len([p for p in connected if p not in errors]),
    }
    if errors:
        metadata["errors"] = errors
    return {
        "success": True,
        "analytics": build_analytics(messages.data, meetings.data),
        "metadata": metadata,
    }


@router.get("/{provider}")
async def provider_data(
    provider: str,
    kind: EntityKind = Query(EntityKind.MESSAGES, alias="type"),
    options: DataIntegrationOptions = Depends(query_options),
    user_id: str = Depends(get_current_user),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Query a single provider.

    Returns 502 with the provider's failure reason when the provider call
    fails, since there is nothing to fall back on.
    """
    spec = get_spec(provider)
    if kind not in (EntityKind.MESSAGES, EntityKind.MEETINGS) or not spec.supports(kind.value):
        raise UnsupportedDataTypeError(provider, kind.value)

    connected = await orchestrator.resolve_connected_providers(user_id, [provider])
    if not connected:
        return NO_SERVICES

    result = await orchestrator.fetch_unified(user_id, kind, options, [provider])
    if provider in result.errors:
        return JSONResponse(
            status_code=502,
            content={"success": False, "error": result.errors[provider], "service": provider},
        )
    return result.to_response(options.include_metadata)
