#!/usr/bin/env python3
"""Unit tests for Graph token management.

Tests cover:
    - Token fetching and caching
    - Token expiration detection
    - Credential rejection and retry behaviour
    - Configuration validation
"""

import sys
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.intune.api.auth import GRAPH_SCOPE, CachedToken, TokenManager
from src.intune.api.exceptions import (
    ConfigurationError,
    InvalidCredentialsError,
    TokenFetchError,
)


def _mock_session(status: int, json_body=None, text_body: str = ""):
    """Build an aiohttp.ClientSession mock returning one response."""
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=json_body or {})
    mock_response.text = AsyncMock(return_value=text_body)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


# ============================================
# CachedToken Tests
# ============================================

class TestCachedToken:
    """Test the CachedToken dataclass."""

    def test_not_expired_when_new(self):
        """Fresh token should not be expired."""
        token = CachedToken(
            access_token="test_token_123",
            expires_at=time.time() + 3600,
        )
        assert not token.is_expired
        assert token.time_remaining > 3500

    def test_expired_when_past(self):
        """Token with past expiration should be expired."""
        token = CachedToken(
            access_token="test_token_123",
            expires_at=time.time() - 100,
        )
        assert token.is_expired
        assert token.time_remaining == 0

    def test_expired_within_buffer(self):
        """Entra ID tokens (~3599s TTL) get a ~360s buffer capped at 300s."""
        token = CachedToken(
            access_token="test_token_123",
            expires_at=time.time() + 200,
            expires_in=3599,
        )
        assert token.is_expired

    def test_token_id_is_sha256_hash(self):
        """token_id should be a SHA-256 prefix, safe for logs."""
        import hashlib
        token = CachedToken(
            access_token="my_secret_token_value",
            expires_at=time.time() + 3600,
        )
        expected_hash = hashlib.sha256(b"my_secret_token_value").hexdigest()[:8]
        assert token.token_id == expected_hash
        assert "my_secret" not in token.token_id


# ============================================
# TokenManager Tests
# ============================================

class TestTokenManager:
    """Test the TokenManager class."""

    @pytest.fixture
    def env_vars(self, monkeypatch):
        """Set required environment variables."""
        monkeypatch.setenv("AZURE_TENANT_ID", "contoso-tenant")
        monkeypatch.setenv("AZURE_CLIENT_ID", "test_client_id")
        monkeypatch.setenv("AZURE_CLIENT_SECRET", "test_client_secret")

    def test_missing_env_vars_raises(self, monkeypatch):
        """Should raise ConfigurationError listing every missing variable."""
        monkeypatch.delenv("AZURE_TENANT_ID", raising=False)
        monkeypatch.delenv("AZURE_CLIENT_ID", raising=False)
        monkeypatch.delenv("AZURE_CLIENT_SECRET", raising=False)

        with pytest.raises(ConfigurationError) as exc:
            TokenManager()

        assert "AZURE_TENANT_ID" in str(exc.value)
        assert exc.value.details["missing_keys"] == [
            "AZURE_TENANT_ID",
            "AZURE_CLIENT_ID",
            "AZURE_CLIENT_SECRET",
        ]

    def test_explicit_credentials(self, monkeypatch):
        """Explicit arguments win over the environment."""
        monkeypatch.delenv("AZURE_TENANT_ID", raising=False)

        manager = TokenManager(
            tenant_id="explicit-tenant",
            client_id="explicit_id",
            client_secret="explicit_secret",
        )

        assert manager.client_id == "explicit_id"
        assert manager.token_url == (
            "https://login.microsoftonline.com/explicit-tenant/oauth2/v2.0/token"
        )

    @pytest.mark.asyncio
    async def test_get_token_fetches_new(self, env_vars):
        """First call to get_token should post the client credentials grant."""
        manager = TokenManager()
        mock_session = _mock_session(200, {
            "access_token": "new_access_token_abc123",
            "expires_in": 3599,
            "token_type": "Bearer",
        })

        with patch("aiohttp.ClientSession", return_value=mock_session):
            token = await manager.get_token()

        assert token == "new_access_token_abc123"
        payload = mock_session.post.call_args.kwargs["data"]
        assert payload["grant_type"] == "client_credentials"
        assert payload["scope"] == GRAPH_SCOPE

    @pytest.mark.asyncio
    async def test_get_token_returns_cached(self, env_vars):
        """Second call should return the cached token without HTTP."""
        manager = TokenManager()
        manager._cached_token = CachedToken(
            access_token="cached_token_xyz",
            expires_at=time.time() + 3600,
        )

        with patch("aiohttp.ClientSession") as mock_session_cls:
            token = await manager.get_token()
            mock_session_cls.assert_not_called()

        assert token == "cached_token_xyz"

    @pytest.mark.asyncio
    async def test_invalid_client_raises_without_retry(self, env_vars):
        """invalid_client is not retried."""
        manager = TokenManager()
        mock_session = _mock_session(
            401, text_body='{"error":"invalid_client","error_description":"AADSTS7000215"}'
        )

        with patch("aiohttp.ClientSession", return_value=mock_session):
            with pytest.raises(InvalidCredentialsError):
                await manager.get_token()

        assert mock_session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_expired_secret_is_invalid_credentials(self, env_vars):
        """AADSTS7000222 (expired secret) is a credentials problem even on HTTP 400."""
        manager = TokenManager()
        mock_session = _mock_session(
            400,
            text_body=(
                '{"error":"unauthorized_client","error_description":'
                '"AADSTS7000222: The provided client secret keys are expired.\\r\\nTrace ID: t",'
                '"error_codes":[7000222],"trace_id":"trace-1"}'
            ),
        )

        with patch("aiohttp.ClientSession", return_value=mock_session):
            with pytest.raises(InvalidCredentialsError) as exc:
                await manager.get_token()

        assert exc.value.aadsts_code == 7000222
        assert exc.value.details["request_id"] == "trace-1"
        assert exc.value.details["error_description"].startswith("AADSTS7000222")
        assert mock_session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_bad_request_keeps_oauth_error(self, env_vars):
        """Other 400s fail immediately as TokenFetchError with the OAuth error code."""
        manager = TokenManager()
        mock_session = _mock_session(
            400, text_body='{"error":"invalid_scope","error_codes":[70011]}'
        )

        with patch("aiohttp.ClientSession", return_value=mock_session):
            with pytest.raises(TokenFetchError) as exc:
                await manager.get_token()

        assert exc.value.details["error"] == "invalid_scope"
        assert exc.value.aadsts_code == 70011
        assert mock_session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_server_errors_retry_then_fail(self, env_vars):
        """5xx responses are retried max_retries times, then TokenFetchError."""
        manager = TokenManager()
        mock_session = _mock_session(503, text_body="unavailable")

        with patch("aiohttp.ClientSession", return_value=mock_session), \
                patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(TokenFetchError) as exc:
                await manager._fetch_token(max_retries=3)

        assert mock_session.post.call_count == 3
        assert exc.value.details["attempts"] == 3

    def test_invalidate_clears_cache(self, env_vars):
        """invalidate() should clear the cached token."""
        manager = TokenManager()
        manager._cached_token = CachedToken(
            access_token="cached_token",
            expires_at=time.time() + 3600,
        )

        manager.invalidate()

        assert manager._cached_token is None
        assert manager.token_info is None

    def test_token_info_hides_token(self, env_vars):
        """token_info should expose only a hash of the token."""
        manager = TokenManager()
        manager._cached_token = CachedToken(
            access_token="a_very_long_token_that_should_be_hashed",
            expires_at=time.time() + 3600,
        )

        info = manager.token_info

        assert not info["is_expired"]
        assert "a_very_long" not in str(info)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
