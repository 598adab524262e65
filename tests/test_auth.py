"""Unit tests for auth.py - Bearer token source."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from auth import AuthError, TokenSource, load_key_file
from config import CloudConfig


def mock_token_endpoint(mock_session_cls, status=200, body=None):
    """Wire a patched ClientSession whose post() answers the token request."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.json = AsyncMock(return_value=body or {})
    mock_resp.text = AsyncMock(return_value="denied")

    mock_session = AsyncMock()
    mock_session.post = MagicMock(
        return_value=AsyncMock(
            __aenter__=AsyncMock(return_value=mock_resp),
            __aexit__=AsyncMock(return_value=False),
        )
    )

    mock_session_cls.return_value = AsyncMock(
        __aenter__=AsyncMock(return_value=mock_session),
        __aexit__=AsyncMock(return_value=False),
    )
    return mock_session


class TestLoadKeyFile:
    """Tests for load_key_file function."""

    def test_reads_client_credentials(self, tmp_path):
        path = tmp_path / "key.json"
        path.write_text(json.dumps({"client_id": "id", "client_secret": "secret"}))

        data = load_key_file(str(path))

        assert data["client_id"] == "id"
        assert data["client_secret"] == "secret"

    def test_missing_secret_raises(self, tmp_path):
        path = tmp_path / "key.json"
        path.write_text(json.dumps({"client_id": "id"}))

        with pytest.raises(AuthError):
            load_key_file(str(path))


@pytest.mark.asyncio
class TestTokenSource:
    """Tests for TokenSource."""

    async def test_static_token_wins(self):
        source = TokenSource(CloudConfig(access_token="static", client_id="id"))

        with patch("auth.aiohttp.ClientSession") as mock_session_cls:
            assert await source.token() == "static"
            mock_session_cls.assert_not_called()

    async def test_token_url(self):
        source = TokenSource(CloudConfig(issuer="https://auth.example.com/"))
        assert source.token_url == "https://auth.example.com/oauth/token"

    async def test_client_credentials_grant(self):
        config = CloudConfig(
            client_id="id", client_secret="secret", audience="https://api"
        )
        source = TokenSource(config)

        with patch("auth.aiohttp.ClientSession") as mock_session_cls:
            mock_session = mock_token_endpoint(
                mock_session_cls, body={"access_token": "t1", "expires_in": 3600}
            )

            assert await source.token() == "t1"

            args, kwargs = mock_session.post.call_args
            assert args[0] == source.token_url
            assert kwargs["data"] == {
                "grant_type": "client_credentials",
                "client_id": "id",
                "client_secret": "secret",
                "audience": "https://api",
            }

    async def test_token_is_cached_until_expiry(self):
        now = [1000.0]
        config = CloudConfig(client_id="id", client_secret="secret")
        source = TokenSource(config, clock=lambda: now[0])

        with patch("auth.aiohttp.ClientSession") as mock_session_cls:
            mock_session = mock_token_endpoint(
                mock_session_cls, body={"access_token": "t1", "expires_in": 120}
            )

            await source.token()
            await source.token()
            assert mock_session.post.call_count == 1

            # Past expires_in minus the refresh margin
            now[0] += 61
            await source.token()
            assert mock_session.post.call_count == 2

    async def test_key_file_credentials(self, tmp_path):
        path = tmp_path / "key.json"
        path.write_text(
            json.dumps({"client_id": "file-id", "client_secret": "file-secret"})
        )
        source = TokenSource(CloudConfig(key_file_path=str(path)))

        with patch("auth.aiohttp.ClientSession") as mock_session_cls:
            mock_session = mock_token_endpoint(
                mock_session_cls, body={"access_token": "t2"}
            )

            assert await source.token() == "t2"
            assert mock_session.post.call_args[1]["data"]["client_id"] == "file-id"

    async def test_no_credentials_raises(self):
        source = TokenSource(CloudConfig())

        with pytest.raises(AuthError) as exc_info:
            await source.token()
        assert "No credentials configured" in str(exc_info.value)

    async def test_rejected_grant_raises(self):
        source = TokenSource(CloudConfig(client_id="id", client_secret="bad"))

        with patch("auth.aiohttp.ClientSession") as mock_session_cls:
            mock_token_endpoint(mock_session_cls, status=401)

            with pytest.raises(AuthError) as exc_info:
                await source.token()
            assert "401" in str(exc_info.value)

    async def test_transport_error_raises(self):
        source = TokenSource(CloudConfig(client_id="id", client_secret="secret"))

        with patch("auth.aiohttp.ClientSession") as mock_session_cls:
            mock_session_cls.side_effect = aiohttp.ClientError("unreachable")

            with pytest.raises(AuthError):
                await source.token()
