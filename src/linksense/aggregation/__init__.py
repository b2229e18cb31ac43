"""Cross-provider aggregation and analytics."""

from linksense.aggregation.analytics import (
    analyze_data_quality,
    build_analytics,
    calculate_cross_service_analysis,
    calculate_meeting_stats,
    calculate_message_stats,
)
from linksense.aggregation.orchestrator import (
    AggregationOrchestrator,
    AggregationResult,
    CombinedResult,
    merge_entities,
)

__all__ = [
    "AggregationOrchestrator",
    "AggregationResult",
    "CombinedResult",
    "merge_entities",
    "analyze_data_quality",
    "build_analytics",
    "calculate_cross_service_analysis",
    "calculate_meeting_stats",
    "calculate_message_stats",
]
