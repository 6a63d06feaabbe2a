"""Unit tests for the authentication middleware module.

This module tests the verify_api_key function: valid keys, missing keys and
rejected keys.
"""

from unittest.mock import patch

import pytest
from fastapi import HTTPException, status

from skew_protection.api.middleware.auth import API_KEY_HEADER, verify_api_key


@pytest.fixture
def api_key():
    with patch("skew_protection.api.middleware.auth.settings") as mock_settings:
        mock_settings.api_key = "test-api-key-12345"
        yield mock_settings.api_key


class TestVerifyApiKey:
    """Test verify_api_key."""

    def test_header_name(self):
        assert API_KEY_HEADER == "X-API-Key"

    @pytest.mark.asyncio
    async def test_valid_key(self, api_key):
        assert await verify_api_key(x_api_key=api_key) == api_key

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [None, ""])
    async def test_missing_key(self, api_key, value):
        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=value)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert "API key required" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_invalid_key_logged(self, api_key):
        with patch("skew_protection.api.middleware.auth.logger") as mock_logger:
            with pytest.raises(HTTPException) as exc_info:
                await verify_api_key(x_api_key="wrong-key")

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "Invalid API key"
        mock_logger.warning.assert_called_once()
        assert "wron..." in mock_logger.warning.call_args[0][0]

    @pytest.mark.asyncio
    async def test_key_is_case_sensitive(self, api_key):
        with pytest.raises(HTTPException):
            await verify_api_key(x_api_key=api_key.upper())
