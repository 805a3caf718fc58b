"""
Internal chunked blob store.

Files are split into fixed-size chunks stored alongside the rest of the data
in SQLite, in the same shape as a GridFS bucket: one ``blob_files`` row with
the file metadata plus ``blob_chunks`` rows numbered from 0.
"""

import asyncio
import json
import logging
import sqlite3
import uuid

from bookkeeping import config
from bookkeeping.database import get_db
from bookkeeping.exceptions import BlobNotFoundError, StorageIOError
from bookkeeping.models import BlobHandle, StorageType, utcnow
from bookkeeping.storage.base import BlobStore

logger = logging.getLogger(__name__)


class ChunkedBlobStore(BlobStore):
    storage_type = StorageType.INTERNAL

    def __init__(self, db_path: str | None = None, chunk_size: int | None = None):
        self.db_path = db_path
        self.chunk_size = chunk_size or config.BLOB_CHUNK_SIZE

    async def put(self, data: bytes, filename: str, metadata: dict | None = None) -> BlobHandle:
        return await asyncio.to_thread(self._put, data, filename, metadata or {})

    async def get(self, handle: BlobHandle) -> bytes:
        self._check_handle(handle)
        return await asyncio.to_thread(self._get, handle.key)

    async def delete(self, handle: BlobHandle) -> None:
        self._check_handle(handle)
        await asyncio.to_thread(self._delete, handle.key)

    # ── sync implementations ─────────────────────────────────────────────────

    def _put(self, data: bytes, filename: str, metadata: dict) -> BlobHandle:
        file_id = uuid.uuid4().hex
        content_type = metadata.get("content_type", "application/octet-stream")
        try:
            with get_db(self.db_path) as conn:
                conn.execute(
                    """INSERT INTO blob_files
                       (id, filename, content_type, length, chunk_size, metadata_json, upload_date)
                       VALUES (?,?,?,?,?,?,?)""",
                    (file_id, filename, content_type, len(data), self.chunk_size,
                     json.dumps(metadata, default=str), utcnow()),
                )
                for n, start in enumerate(range(0, len(data), self.chunk_size)):
                    conn.execute(
                        "INSERT INTO blob_chunks (files_id, n, data) VALUES (?,?,?)",
                        (file_id, n, data[start : start + self.chunk_size]),
                    )
        except sqlite3.Error as e:
            raise StorageIOError(f"Chunked upload failed: {e}") from e

        logger.info("Stored %s (%d bytes) as chunked file %s", filename, len(data), file_id)
        return BlobHandle(storage_type=self.storage_type, key=file_id)

    def _get(self, file_id: str) -> bytes:
        try:
            with get_db(self.db_path) as conn:
                row = conn.execute(
                    "SELECT length FROM blob_files WHERE id=?", (file_id,)
                ).fetchone()
                if row is None:
                    raise BlobNotFoundError(file_id)
                chunks = conn.execute(
                    "SELECT data FROM blob_chunks WHERE files_id=? ORDER BY n", (file_id,)
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageIOError(f"Chunked download failed: {e}") from e

        data = b"".join(c["data"] for c in chunks)
        if len(data) != row["length"]:
            raise StorageIOError(
                f"Chunked file {file_id} is truncated: expected {row['length']} bytes, got {len(data)}"
            )
        return data

    def _delete(self, file_id: str) -> None:
        try:
            with get_db(self.db_path) as conn:
                cur = conn.execute("DELETE FROM blob_files WHERE id=?", (file_id,))
                # chunks go with the file row via ON DELETE CASCADE
        except sqlite3.Error as e:
            raise StorageIOError(f"Chunked delete failed: {e}") from e
        if cur.rowcount == 0:
            raise BlobNotFoundError(file_id)
        logger.info("Deleted chunked file %s", file_id)
