"""Unified entity models and the normalizer that maps provider records onto them."""

from linksense.normalization.models import (
    DataIntegrationOptions,
    EntityKind,
    UnifiedActivity,
    UnifiedMeeting,
    UnifiedMessage,
)
from linksense.normalization.normalizer import normalize, normalize_batch, to_activity

__all__ = [
    "DataIntegrationOptions",
    "EntityKind",
    "UnifiedActivity",
    "UnifiedMeeting",
    "UnifiedMessage",
    "normalize",
    "normalize_batch",
    "to_activity",
]
