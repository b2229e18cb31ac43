"""API route handlers.

This module exports all API routers for inclusion in the FastAPI application.
"""

from linksense.api.routes.data_integration import router as data_integration_router
from linksense.api.routes.health import router as health_router
from linksense.api.routes.oauth import router as oauth_router

__all__ = [
    "data_integration_router",
    "health_router",
    "oauth_router",
]
