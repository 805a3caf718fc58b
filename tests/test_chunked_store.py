"""
Tests for bookkeeping.storage.chunked — the internal chunked blob store.
"""

import asyncio

import pytest

from bookkeeping.database import init_db, get_db
from bookkeeping.exceptions import BlobNotFoundError, StorageIOError
from bookkeeping.models import BlobHandle, StorageType
from bookkeeping.storage.base import get_blob_store, with_timeout
from bookkeeping.storage.chunked import ChunkedBlobStore
from bookkeeping.storage.object_store import ObjectBlobStore


@pytest.fixture
def tmp_db(tmp_path):
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    return db_path


@pytest.fixture
def store(tmp_db):
    return ChunkedBlobStore(db_path=tmp_db, chunk_size=4)


class TestChunkedBlobStore:
    @pytest.mark.asyncio
    async def test_put_get_roundtrip(self, store, tmp_db):
        data = b"statement bytes spanning several chunks"
        handle = await store.put(data, "bpi_march.pdf", {"content_type": "application/pdf"})

        assert handle.storage_type == StorageType.INTERNAL
        assert await store.get(handle) == data

        with get_db(tmp_db) as conn:
            n = conn.execute("SELECT COUNT(*) FROM blob_chunks WHERE files_id=?", (handle.key,)).fetchone()[0]
            row = conn.execute("SELECT * FROM blob_files WHERE id=?", (handle.key,)).fetchone()
        assert n == 10
        assert row["length"] == len(data)
        assert row["content_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_delete_removes_file_and_chunks(self, store, tmp_db):
        handle = await store.put(b"0123456789", "x.pdf")
        await store.delete(handle)

        with get_db(tmp_db) as conn:
            assert conn.execute("SELECT COUNT(*) FROM blob_chunks").fetchone()[0] == 0
        with pytest.raises(BlobNotFoundError):
            await store.get(handle)

    @pytest.mark.asyncio
    async def test_delete_twice_raises_not_found(self, store):
        handle = await store.put(b"abc", "x.pdf")
        await store.delete(handle)
        with pytest.raises(BlobNotFoundError):
            await store.delete(handle)

    @pytest.mark.asyncio
    async def test_truncated_file(self, store, tmp_db):
        handle = await store.put(b"0123456789", "x.pdf")
        with get_db(tmp_db) as conn:
            conn.execute("DELETE FROM blob_chunks WHERE files_id=? AND n=1", (handle.key,))
        with pytest.raises(StorageIOError, match="truncated"):
            await store.get(handle)

    @pytest.mark.asyncio
    async def test_rejects_external_handle(self, store):
        handle = BlobHandle(storage_type=StorageType.EXTERNAL, key="accounting/a/2024/01/1.pdf")
        with pytest.raises(StorageIOError):
            await store.get(handle)

    @pytest.mark.asyncio
    async def test_empty_blob(self, store):
        handle = await store.put(b"", "empty.pdf")
        assert await store.get(handle) == b""


class TestBlobStoreHelpers:
    def test_get_blob_store_by_type(self, tmp_db):
        assert isinstance(get_blob_store("internal", db_path=tmp_db), ChunkedBlobStore)
        assert isinstance(get_blob_store(StorageType.EXTERNAL), ObjectBlobStore)

    def test_get_blob_store_unknown_type(self):
        with pytest.raises(ValueError):
            get_blob_store("ftp")

    @pytest.mark.asyncio
    async def test_with_timeout(self):
        with pytest.raises(StorageIOError, match="timed out"):
            await with_timeout(asyncio.sleep(1), "get", timeout=0.01)

    @pytest.mark.asyncio
    async def test_with_timeout_passes_result(self):
        async def fetch():
            return b"data"
        assert await with_timeout(fetch(), "get", timeout=1) == b"data"
