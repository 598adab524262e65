"""
Authentication - Bearer tokens for the control-plane API.

A static access token wins when one is configured. Otherwise the OAuth2
client-credentials grant is used, with the client id and secret taken from
configuration or from a service-account key file.
"""

import json
import logging
import time
from typing import Callable, Optional, Tuple

import aiohttp

from config import CloudConfig

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN = 60


class AuthError(Exception):
    """Raised when no usable credentials are configured or the grant fails."""


def load_key_file(path: str) -> dict:
    """Read client credentials from a service-account key file."""
    with open(path) as f:
        data = json.load(f)
    if not data.get("client_id") or not data.get("client_secret"):
        raise AuthError(f"Key file {path} must contain client_id and client_secret")
    return data


class TokenSource:
    """Produces bearer tokens, caching them until shortly before expiry."""

    def __init__(
        self, config: CloudConfig, clock: Callable[[], float] = time.monotonic
    ):
        self.config = config
        self.clock = clock
        self._token: Optional[str] = config.access_token or None
        self._expires_at: Optional[float] = None

    @property
    def token_url(self) -> str:
        return f"{self.config.issuer.rstrip('/')}/oauth/token"

    def _credentials(self) -> Tuple[str, str]:
        client_id = self.config.client_id
        client_secret = self.config.client_secret
        if self.config.key_file_path:
            data = load_key_file(self.config.key_file_path)
            client_id = data["client_id"]
            client_secret = data["client_secret"]
        if not client_id or not client_secret:
            raise AuthError(
                "No credentials configured. Set ACCESS_TOKEN, KEY_FILE_PATH or "
                "GLOBAL_DEFAULT_CLIENT_ID and GLOBAL_DEFAULT_CLIENT_SECRET."
            )
        return client_id, client_secret

    async def token(self) -> str:
        """Return a valid access token, requesting a new one when needed."""
        if self.config.access_token:
            return self.config.access_token

        if self._token and self._expires_at and self.clock() < self._expires_at:
            return self._token

        client_id, client_secret = self._credentials()
        payload = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "audience": self.config.audience,
        }
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.token_url, data=payload) as resp:
                    if resp.status != 200:
                        raise AuthError(
                            f"Token request failed: {resp.status} - "
                            f"{await resp.text()}"
                        )
                    body = await resp.json()
        except aiohttp.ClientError as e:
            raise AuthError(f"Token request failed: {e}") from e

        self._token = body["access_token"]
        expires_in = int(body.get("expires_in", 3600))
        self._expires_at = self.clock() + max(expires_in - EXPIRY_MARGIN, 0)
        logger.info(f"Obtained access token for client {client_id}")
        return self._token
