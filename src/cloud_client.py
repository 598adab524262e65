"""
Cloud Client - Thin REST client for the StreamNative Cloud control plane.

The control plane exposes a Kubernetes-style API: every object kind lives
under a namespaced collection and reports failures as a Kubernetes
``Status`` document.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

API_GROUP = "cloud.streamnative.io"
API_VERSION = "v1alpha1"


class CloudAPIError(Exception):
    """Raised when the control plane rejects a request or cannot be reached."""

    def __init__(self, status: int, reason: str = "", message: str = ""):
        self.status = status
        self.reason = reason
        self.message = message
        text = f"{reason}: {message}" if reason and message else (message or reason)
        super().__init__(f"HTTP {status} {text}".strip())


class NotFoundError(CloudAPIError):
    """Raised when the addressed object does not exist."""

    def __init__(self, reason: str = "NotFound", message: str = ""):
        super().__init__(404, reason, message)


def _error_from_response(status: int, body: str) -> CloudAPIError:
    """Build the matching error from a Kubernetes Status body."""
    reason, message = "", body
    try:
        payload = json.loads(body) if body else {}
    except ValueError:
        payload = {}
    if isinstance(payload, dict):
        reason = payload.get("reason", "")
        message = payload.get("message", body)

    if status == 404:
        return NotFoundError(reason or "NotFound", message)
    return CloudAPIError(status, reason, message)


class CloudClient:
    """
    Async client for namespaced control-plane collections.

    Every request opens its own aiohttp session and carries a bearer token
    from the configured token source.
    """

    def __init__(
        self,
        api_server: str,
        token_source: Optional[Any] = None,
        timeout: int = 30,
    ):
        self.api_server = api_server.rstrip("/")
        self.token_source = token_source
        self.timeout = timeout

    def url(self, namespace: str, plural: str, name: Optional[str] = None) -> str:
        """Build the collection or object URL."""
        base = (
            f"{self.api_server}/apis/{API_GROUP}/{API_VERSION}"
            f"/namespaces/{namespace}/{plural}"
        )
        if name:
            return f"{base}/{name}"
        return base

    async def get(self, namespace: str, plural: str, name: str) -> Dict[str, Any]:
        return await self._request("GET", self.url(namespace, plural, name))

    async def list(self, namespace: str, plural: str) -> List[Dict[str, Any]]:
        body = await self._request("GET", self.url(namespace, plural))
        return body.get("items") or []

    async def create(
        self, namespace: str, plural: str, obj: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request("POST", self.url(namespace, plural), obj)

    async def update(
        self, namespace: str, plural: str, name: str, obj: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request("PUT", self.url(namespace, plural, name), obj)

    async def delete(self, namespace: str, plural: str, name: str) -> Dict[str, Any]:
        return await self._request("DELETE", self.url(namespace, plural, name))

    # Private helper methods

    async def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token_source is not None:
            token = await self.token_source.token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self, method: str, url: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        headers = await self._headers()
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        logger.debug(f"{method} {url}")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=headers, json=body
                ) as response:
                    text = await response.text()
                    if response.status >= 400:
                        raise _error_from_response(response.status, text)
                    if not text:
                        return {}
                    try:
                        return json.loads(text)
                    except ValueError as e:
                        raise CloudAPIError(
                            response.status,
                            "InvalidResponse",
                            f"{method} {url} returned a body that is not JSON: {e}",
                        ) from e
        except aiohttp.ClientError as e:
            raise CloudAPIError(0, "TransportError", str(e)) from e
        except asyncio.TimeoutError as e:
            raise CloudAPIError(
                0, "Timeout", f"{method} {url} timed out after {self.timeout}s"
            ) from e
