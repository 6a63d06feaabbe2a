"""Authentication for the admin endpoints."""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from skew_protection.config import settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
) -> str:
    """Verify API key from request header.

    Args:
        x_api_key: API key from X-API-Key header.

    Returns:
        The API key if valid.

    Raises:
        HTTPException: If API key is missing or invalid.
    """
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Provide X-API-Key header.",
        )

    if not hmac.compare_digest(x_api_key, settings.api_key):
        logger.warning(f"Invalid API key attempt: {x_api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return x_api_key
