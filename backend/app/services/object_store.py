"""Object storage client.

The core needs two things from storage: an idempotent delete and signed
download URLs. Any failure is surfaced as ``StorageFailureError`` so callers
can apply their own abort or partial-tolerance policy.
"""

import logging
from typing import Protocol
from urllib.parse import quote

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.core.errors import StorageFailureError

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def delete_file(self, path: str, bucket: str | None = None) -> None: ...

    async def get_signed_url(self, path: str, bucket: str | None = None, expires_in: int | None = None) -> str: ...


class HttpObjectStore:
    """Client for the storage gateway's REST API."""

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float = 30.0):
        self.base_url = (base_url or settings.object_store_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.object_store_api_key
        self.timeout = httpx.Timeout(timeout, connect=5.0)

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/{quote(bucket)}/{quote(path.lstrip('/'))}"

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        reraise=True,
    )
    async def _call(self, method: str, url: str, json: dict | None = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._headers(), json=json)

    async def delete_file(self, path: str, bucket: str | None = None) -> None:
        """Delete an object. A missing object counts as deleted."""
        bucket = bucket or settings.storage_bucket
        try:
            response = await self._call("DELETE", self._object_url(bucket, path))
        except httpx.HTTPError as e:
            logger.error("Storage delete failed for %s/%s: %s", bucket, path, e)
            raise StorageFailureError(f"Failed to delete {path} from storage") from e
        if response.status_code == 404:
            logger.debug("Object %s/%s already absent", bucket, path)
            return
        if response.is_error:
            logger.error("Storage delete for %s/%s returned %d", bucket, path, response.status_code)
            raise StorageFailureError(f"Failed to delete {path} from storage")

    async def get_signed_url(self, path: str, bucket: str | None = None, expires_in: int | None = None) -> str:
        """Issue a time-limited download URL for an object."""
        bucket = bucket or settings.storage_bucket
        expires_in = expires_in or settings.signed_url_expiry_seconds
        url = f"{self.base_url}/object/sign/{quote(bucket)}/{quote(path.lstrip('/'))}"
        try:
            response = await self._call("POST", url, json={"expiresIn": expires_in})
            response.raise_for_status()
            signed = response.json().get("signedURL") or response.json().get("signedUrl")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Signed URL request failed for %s/%s: %s", bucket, path, e)
            raise StorageFailureError(f"Failed to create download URL for {path}") from e
        if not signed:
            raise StorageFailureError(f"Storage returned no download URL for {path}")
        if signed.startswith("/"):
            signed = f"{self.base_url}{signed}"
        return signed


async def fetch_bytes(url: str) -> bytes:
    """Download the body behind a signed URL."""
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=5.0)) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                chunks = [chunk async for chunk in response.aiter_bytes()]
    except httpx.HTTPError as e:
        logger.error("Download from signed URL failed: %s", e)
        raise StorageFailureError("Failed to download file content") from e
    return b"".join(chunks)
