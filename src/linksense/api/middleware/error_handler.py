"""Error handling middleware for FastAPI application.

This module provides centralized error handling for the API, converting
domain exceptions and validation errors into appropriate HTTP responses.
"""

from typing import Any, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from linksense.errors import LinkSenseError, UnsupportedProviderError
from linksense.observability.logging import get_logger

logger = get_logger(__name__)


def _validation_response(raw_errors: Sequence[Any]) -> JSONResponse:
    errors: list[dict[str, Any]] = []
    for error in raw_errors:
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({"field": field, "message": error["msg"]})

    return JSONResponse(
        status_code=400,
        content={
            "code": "validation_error",
            "message": "Request validation failed",
            "errors": errors,
        },
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the FastAPI application.

    Args:
        app: The FastAPI application instance to configure
    """

    @app.exception_handler(LinkSenseError)
    async def handle_linksense_error(request: Request, exc: LinkSenseError) -> JSONResponse:
        """Render domain errors with their own status code.

        Unsupported provider errors also list the supported identifiers.
        """
        content: dict[str, Any] = {"code": exc.code, "message": exc.message}
        if isinstance(exc, UnsupportedProviderError):
            content["supportedIntegrations"] = exc.supported
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle malformed query parameters and request bodies."""
        return _validation_response(exc.errors())

    @app.exception_handler(PydanticValidationError)
    async def handle_validation_error(
        request: Request, exc: PydanticValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors raised while building domain objects.

        Args:
            request: The incoming request that failed validation
            exc: The PydanticValidationError with validation details

        Returns:
            JSONResponse with 400 status code and formatted error details
        """
        return _validation_response(exc.errors())

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions with generic error response.

        Logs the exception details and returns a generic 500 error to avoid
        exposing internal implementation details to clients.
        """
        logger.exception("unexpected_error", path=request.url.path, error=str(exc))

        return JSONResponse(
            status_code=500,
            content={"code": "internal_error", "message": "An internal server error occurred"},
        )
