"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from skew_protection.config import settings


def setup_cors(app: FastAPI) -> None:
    """Set up CORS middleware for the FastAPI app.

    The affinity header is exposed so browser asset loaders can read the
    token issued on first load.

    Args:
        app: FastAPI application instance.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.affinity_header_name],
    )
