"""
Blob store capability shared by the internal and external backends.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, TypeVar

from bookkeeping import config
from bookkeeping.exceptions import StorageIOError
from bookkeeping.models import BlobHandle, StorageType

T = TypeVar("T")


class BlobStore(ABC):
    """Uniform put/get/delete over a single storage backend."""

    storage_type: StorageType

    @abstractmethod
    async def put(self, data: bytes, filename: str, metadata: dict | None = None) -> BlobHandle:
        ...

    @abstractmethod
    async def get(self, handle: BlobHandle) -> bytes:
        ...

    @abstractmethod
    async def delete(self, handle: BlobHandle) -> None:
        """Remove the blob. Raises BlobNotFoundError if it is already gone."""

    def _check_handle(self, handle: BlobHandle):
        if handle.storage_type != self.storage_type:
            raise StorageIOError(
                f"{type(self).__name__} cannot serve a '{handle.storage_type.value}' handle",
                details={"handle": handle.key},
            )


async def with_timeout(aw: Awaitable[T], operation: str, timeout: float | None = None) -> T:
    """Bound a blob operation; a timeout surfaces as StorageIOError."""
    timeout = timeout if timeout is not None else config.BLOB_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(aw, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StorageIOError(f"Blob {operation} timed out after {timeout:g}s", retryable=True) from e


def get_blob_store(storage_type: StorageType | str, db_path: str | None = None) -> BlobStore:
    """Return the backend for a stored ``storage_type`` tag."""
    from bookkeeping.storage.chunked import ChunkedBlobStore
    from bookkeeping.storage.object_store import ObjectBlobStore

    storage_type = StorageType(storage_type)
    if storage_type == StorageType.INTERNAL:
        return ChunkedBlobStore(db_path=db_path)
    return ObjectBlobStore()
