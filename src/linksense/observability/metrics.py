"""Prometheus metrics collection for monitoring.

This module provides Prometheus metrics for tracking OAuth connect flows,
provider fetches during aggregation, normalization drops and HTTP traffic.
"""

from typing import Optional

from prometheus_client import Counter, Histogram, generate_latest

# OAuth connect flow metrics
oauth_connects_total = Counter(
    "linksense_oauth_connects_total",
    "Total number of completed OAuth connect flows",
    labelnames=["provider", "outcome"],
)

# Provider fetch metrics
provider_fetches_total = Counter(
    "linksense_provider_fetches_total",
    "Total number of provider fetches during aggregation",
    labelnames=["provider", "kind", "status"],
)

provider_fetch_duration_seconds = Histogram(
    "linksense_provider_fetch_duration_seconds",
    "Provider fetch duration in seconds",
    labelnames=["provider", "kind"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0],
)

normalization_drops_total = Counter(
    "linksense_normalization_drops_total",
    "Raw provider records skipped because they could not be normalized",
    labelnames=["provider", "kind"],
)

# HTTP request metrics
http_requests_total = Counter(
    "linksense_http_requests_total",
    "Total number of HTTP requests",
    labelnames=["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "linksense_http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


class MetricsCollector:
    """Collects and exposes Prometheus metrics.

    Provides methods for recording OAuth connects, provider fetches,
    normalization drops and HTTP requests.
    """

    def record_oauth_connect(self, provider: str, outcome: str) -> None:
        """Record the terminal outcome of a connect flow.

        Args:
            provider: Provider identifier
            outcome: Terminal state (persisted, state_invalid, token_exchange_failed, ...)
        """
        oauth_connects_total.labels(provider=provider, outcome=outcome).inc()

    def record_provider_fetch(
        self,
        provider: str,
        kind: str,
        duration_seconds: float,
        status: str,
    ) -> None:
        """Record a provider fetch during aggregation.

        Args:
            provider: Provider identifier
            kind: Entity kind (messages, meetings)
            duration_seconds: Fetch duration in seconds
            status: Fetch status (success, failed, timeout)

        Example:
            >>> collector = get_metrics_collector()
            >>> collector.record_provider_fetch("slack", "messages", 1.2, "success")
        """
        provider_fetches_total.labels(provider=provider, kind=kind, status=status).inc()
        provider_fetch_duration_seconds.labels(provider=provider, kind=kind).observe(
            duration_seconds
        )

    def record_normalization_drop(self, provider: str, kind: str) -> None:
        """Record a raw record that was skipped during normalization."""
        normalization_drops_total.labels(provider=provider, kind=kind).inc()

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float,
    ) -> None:
        """Record an HTTP request event.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Request endpoint path
            status_code: HTTP status code
            duration_seconds: Request duration in seconds
        """
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration_seconds)

    def generate_metrics(self) -> bytes:
        """Generate Prometheus metrics in text format.

        Returns:
            Metrics in Prometheus exposition format
        """
        return generate_latest()


# Singleton instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global MetricsCollector instance.

    Returns:
        Singleton MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
