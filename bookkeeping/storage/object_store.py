"""
External object store — Supabase Storage over its REST API.

Objects are addressed by path inside a single bucket; the path is the blob
handle stored on the document.
"""

import logging
import os
import time
from urllib.parse import quote

import httpx

from bookkeeping import config
from bookkeeping.exceptions import BlobNotFoundError, StorageIOError
from bookkeeping.models import BlobHandle, StorageType
from bookkeeping.storage.base import BlobStore

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_ROLE)


def object_path(filename: str, metadata: dict) -> str:
    """Build ``accounting/<company>/<year>/<month>/<millis>.<ext>``."""
    ext = os.path.splitext(filename)[1].lstrip(".").lower() or "pdf"
    company = metadata.get("company") or "unassigned"
    year = metadata.get("year") or 0
    month = int(metadata.get("month") or 0)
    return f"accounting/{company}/{year}/{month:02d}/{int(time.time() * 1000)}.{ext}"


class ObjectBlobStore(BlobStore):
    storage_type = StorageType.EXTERNAL

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        bucket: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or config.SUPABASE_URL).rstrip("/")
        self.api_key = api_key or config.SUPABASE_SERVICE_ROLE
        self.bucket = bucket or config.SUPABASE_BUCKET
        self.timeout = timeout or config.BLOB_TIMEOUT_SECONDS

    def _url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"

    def _headers(self, **extra) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "x-client-info": "bookkeeping-pipeline",
            **extra,
        }

    def _ensure_configured(self):
        if not (self.base_url and self.api_key):
            raise StorageIOError("External object store is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE)")

    async def put(self, data: bytes, filename: str, metadata: dict | None = None) -> BlobHandle:
        self._ensure_configured()
        metadata = metadata or {}
        path = object_path(filename, metadata)
        headers = self._headers(**{
            "Content-Type": metadata.get("content_type", "application/octet-stream"),
            "x-upsert": "false",
        })
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            await self._send(client.post, self._url(path), path, content=data, headers=headers)
        logger.info("Uploaded %s (%d bytes) to %s/%s", filename, len(data), self.bucket, path)
        return BlobHandle(storage_type=self.storage_type, key=path)

    async def get(self, handle: BlobHandle) -> bytes:
        self._check_handle(handle)
        self._ensure_configured()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await self._send(client.get, self._url(handle.key), handle.key, headers=self._headers())
        return resp.content

    async def delete(self, handle: BlobHandle) -> None:
        self._check_handle(handle)
        self._ensure_configured()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            await self._send(client.delete, self._url(handle.key), handle.key, headers=self._headers())
        logger.info("Deleted object %s/%s", self.bucket, handle.key)

    async def _send(self, method, url: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await method(url, **kwargs)
        except httpx.TimeoutException as e:
            raise StorageIOError(f"Object store request timed out: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            raise StorageIOError(f"Object store request failed: {e}", retryable=True) from e

        if resp.status_code == 404 or _is_not_found_body(resp):
            raise BlobNotFoundError(path)
        if resp.status_code >= 400:
            raise StorageIOError(
                f"Object store returned HTTP {resp.status_code}",
                details={"path": path, "body": resp.text[:200]},
            )
        return resp


def _is_not_found_body(resp: httpx.Response) -> bool:
    # Supabase reports a missing object as HTTP 400 with statusCode "404" in the body
    if resp.status_code != 400:
        return False
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and (
        str(body.get("statusCode")) == "404" or body.get("error") == "not_found"
    )
