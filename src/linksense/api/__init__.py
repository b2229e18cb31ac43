"""LinkSense API module.

This module provides the FastAPI application and route handlers.
"""

from linksense.api.app import app, create_app

__all__ = ["app", "create_app"]
