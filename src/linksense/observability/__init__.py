"""Observability module for logging and metrics.

This module provides:
- Structured logging with correlation IDs
- Prometheus metrics for OAuth connects, provider fetches and HTTP traffic
"""

from linksense.observability.logging import get_logger, setup_logging
from linksense.observability.metrics import MetricsCollector, get_metrics_collector

__all__ = [
    "setup_logging",
    "get_logger",
    "MetricsCollector",
    "get_metrics_collector",
]
