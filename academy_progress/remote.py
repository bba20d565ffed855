"""
Academy Progress - Remote Store
Authoritative cloud copy of progress documents, addressed by partition and sort key.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx

from .config import get_sync_config
from .errors import RemoteUnavailableError, RemoteRejectedError

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """Async document store. Implementations raise RemoteUnavailableError when the
    store can't be reached and RemoteRejectedError when it refuses a request."""

    @abstractmethod
    async def get(self, partition_key: str, sort_key: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def put(self, partition_key: str, sort_key: str, document: dict) -> None:
        ...

    async def close(self) -> None:
        pass


class HttpRemoteStore(RemoteStore):
    """Progress API over HTTP.

    GET/PUT {base_url}/progress/{partition}/{sort}; 404 on GET means "no record".
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        config = get_sync_config()
        self.base_url = (base_url or config.remote_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("HttpRemoteStore needs a base URL (SYNC_REMOTE_BASE_URL)")
        self.timeout = timeout or config.operation_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    def _url(self, partition_key: str, sort_key: str) -> str:
        return f"{self.base_url}/progress/{quote(partition_key, safe='')}/{quote(sort_key, safe='')}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            # Connect errors, timeouts and dropped connections
            raise RemoteUnavailableError(f"{method} {url} failed: {e}", details=type(e).__name__) from e

    async def get(self, partition_key: str, sort_key: str) -> Optional[dict]:
        url = self._url(partition_key, sort_key)
        response = await self._request("GET", url)

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise RemoteRejectedError(
                f"GET {url} returned {response.status_code}",
                status_code=response.status_code,
                details=response.text[:200]
            )

        try:
            return response.json()
        except ValueError as e:
            # Captive portals and proxies answer 200 with an HTML page
            raise RemoteRejectedError(
                f"GET {url} returned a non-JSON body",
                status_code=response.status_code,
                details=response.text[:200]
            ) from e

    async def put(self, partition_key: str, sort_key: str, document: dict) -> None:
        url = self._url(partition_key, sort_key)
        response = await self._request("PUT", url, json=document)

        if response.status_code >= 400:
            raise RemoteRejectedError(
                f"PUT {url} returned {response.status_code}",
                status_code=response.status_code,
                details=response.text[:200]
            )
        logger.debug(f"Remote write ok {partition_key} {sort_key}")

    async def close(self) -> None:
        await self._client.aclose()
