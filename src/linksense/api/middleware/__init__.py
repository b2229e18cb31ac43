"""API middleware components.

This module exports middleware for error handling and request tracing.
"""

from linksense.api.middleware.correlation import CorrelationIdMiddleware
from linksense.api.middleware.error_handler import setup_error_handlers

__all__ = ["CorrelationIdMiddleware", "setup_error_handlers"]
