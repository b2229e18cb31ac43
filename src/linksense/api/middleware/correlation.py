"""Correlation ID middleware for request tracing.

Every request gets a correlation ID (taken from the X-Correlation-ID header
or generated) that is bound to the logging context, echoed on the response
and recorded with the request metrics.
"""

import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from linksense.observability.logging import (
    clear_correlation_id,
    get_logger,
    set_correlation_id,
)
from linksense.observability.metrics import get_metrics_collector

logger = get_logger(__name__)


def _endpoint_label(request: Request) -> str:
    """Use the route template so path parameters do not explode metric cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to inject correlation IDs into requests."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request with correlation ID.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler in chain

        Returns:
            HTTP response with correlation ID header

        Example:
            Request headers: (none)
            Response headers: X-Correlation-ID: 550e8400-e29b-41d4-a716-446655440000
        """
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        start_time = time.time()

        logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                duration_ms=int((time.time() - start_time) * 1000),
            )
            clear_correlation_id()
            raise

        duration_seconds = time.time() - start_time
        get_metrics_collector().record_http_request(
            method=request.method,
            endpoint=_endpoint_label(request),
            status_code=response.status_code,
            duration_seconds=duration_seconds,
        )
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=int(duration_seconds * 1000),
        )

        response.headers["X-Correlation-ID"] = correlation_id
        clear_correlation_id()
        return response
