"""Error handling middleware and exception handlers."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from skew_protection.errors import SkewProtectionError

logger = logging.getLogger(__name__)


def setup_error_handlers(app: FastAPI) -> None:
    """Set up global error handlers for the FastAPI app.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(SkewProtectionError)
    async def skew_protection_error_handler(
        request: Request, exc: SkewProtectionError
    ) -> JSONResponse:
        """Handle control plane errors (duplicate, not found, invalid state...).

        The routing snapshot is untouched by these; the caller gets the
        error kind and can retry or correct the request.
        """
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.code,
                "detail": exc.message,
                "type": type(exc).__name__,
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        """Handle value errors (validation errors)."""
        logger.warning(f"Validation error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Validation error",
                "detail": str(exc),
                "type": "ValueError",
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred",
                "type": type(exc).__name__,
            },
        )
