"""API middleware for request processing."""

from .auth import verify_api_key
from .cors import setup_cors
from .error_handling import setup_error_handlers

__all__ = ["verify_api_key", "setup_cors", "setup_error_handlers"]
