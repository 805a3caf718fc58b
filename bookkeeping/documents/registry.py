"""
Document registry — the record of truth for uploaded accounting documents.
"""

import logging
import sqlite3
import uuid
from typing import Optional

from bookkeeping.database import get_db
from bookkeeping.documents.status import DISPATCHABLE, REDISPATCHABLE, validate_transition
from bookkeeping.exceptions import DocumentBusyError, DocumentNotFoundError, ValidationError
from bookkeeping.models import (
    AccountingDocument,
    AnalysisResult,
    BlobHandle,
    ProcessingStatus,
    StorageType,
    UploadMetadata,
    utcnow,
)

logger = logging.getLogger(__name__)


def _row_to_document(row: sqlite3.Row) -> AccountingDocument:
    data = dict(row)
    raw_result = data.pop("analysis_result")
    doc = AccountingDocument(**data)
    if raw_result:
        doc.analysis_result = AnalysisResult.model_validate_json(raw_result)
    return doc


def create_document(
    upload: UploadMetadata,
    handle: BlobHandle,
    status: ProcessingStatus = ProcessingStatus.UPLOADED,
    db_path: str | None = None,
) -> AccountingDocument:
    """Insert a new document pointing at already-stored bytes."""
    if status not in (ProcessingStatus.UPLOADED, ProcessingStatus.PENDING):
        raise ValidationError(f"A new document cannot start as '{status.value}'")
    if not upload.uploaded_by:
        raise ValidationError("uploaded_by is required")

    now = utcnow()
    doc = AccountingDocument(
        id=str(uuid.uuid4()),
        company=upload.company,
        month=upload.month,
        year=upload.year,
        document_type=upload.document_type,
        filename=upload.filename,
        content_type=upload.content_type,
        size_bytes=upload.size_bytes,
        storage_type=handle.storage_type,
        gridfs_file_id=handle.key if handle.storage_type == StorageType.INTERNAL else None,
        supabase_path=handle.key if handle.storage_type == StorageType.EXTERNAL else None,
        processing_status=status,
        uploaded_by=upload.uploaded_by,
        created_at=now,
        updated_at=now,
    )
    with get_db(db_path) as conn:
        conn.execute(
            """INSERT INTO documents
               (id, company, month, year, document_type, filename, content_type, size_bytes,
                storage_type, gridfs_file_id, supabase_path, processing_status,
                uploaded_by, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
            (doc.id, doc.company, doc.month, doc.year, doc.document_type.value, doc.filename,
             doc.content_type, doc.size_bytes, doc.storage_type.value, doc.gridfs_file_id,
             doc.supabase_path, doc.processing_status.value, doc.uploaded_by, now, now),
        )
    logger.info("Registered document %s for %s %d-%02d", doc.id, doc.company, doc.year, doc.month)
    return doc


def find_document(doc_id: str, db_path: str | None = None) -> Optional[AccountingDocument]:
    with get_db(db_path) as conn:
        row = conn.execute("SELECT * FROM documents WHERE id=?", (doc_id,)).fetchone()
    return _row_to_document(row) if row else None


def get_document(doc_id: str, db_path: str | None = None) -> AccountingDocument:
    doc = find_document(doc_id, db_path)
    if doc is None:
        raise DocumentNotFoundError(doc_id)
    return doc


def list_documents(
    company: str | None = None,
    status: ProcessingStatus | list[ProcessingStatus] | None = None,
    limit: int | None = None,
    db_path: str | None = None,
) -> list[AccountingDocument]:
    """Most recent fiscal period first, newest upload first within a period."""
    query = "SELECT * FROM documents WHERE 1=1"
    params: list = []

    if company:
        query += " AND company = ?"
        params.append(company)

    if status:
        statuses = status if isinstance(status, list) else [status]
        placeholders = ",".join("?" for _ in statuses)
        query += f" AND processing_status IN ({placeholders})"
        params.extend(ProcessingStatus(s).value for s in statuses)

    query += " ORDER BY year DESC, month DESC, created_at DESC"
    if limit:
        query += " LIMIT ?"
        params.append(limit)

    with get_db(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_document(r) for r in rows]


def update_status(
    doc_id: str,
    new_status: ProcessingStatus,
    error: str | None = None,
    redispatch: bool = False,
    db_path: str | None = None,
) -> AccountingDocument:
    """Validate and apply a status transition."""
    new_status = ProcessingStatus(new_status)
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT processing_status FROM documents WHERE id=?", (doc_id,)
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(doc_id)
        error_message = validate_transition(
            row["processing_status"], new_status, error=error, redispatch=redispatch
        )
        cur = conn.execute(
            """UPDATE documents SET processing_status=?, error_message=?, updated_at=?
               WHERE id=? AND processing_status=?""",
            (new_status.value, error_message, utcnow(), doc_id, row["processing_status"]),
        )
        if cur.rowcount == 0:
            raise DocumentBusyError(doc_id, row["processing_status"])
    logger.info("Document %s: %s → %s", doc_id, row["processing_status"], new_status.value)
    return get_document(doc_id, db_path)


def claim_for_processing(doc_id: str, redispatch: bool = False, db_path: str | None = None) -> AccountingDocument:
    """
    Atomically move a document into ``processing``.

    The status guard in the UPDATE makes this a compare-and-set: of two
    concurrent dispatches for the same document only one sees a changed row,
    the other gets DocumentBusyError.
    """
    allowed = REDISPATCHABLE if redispatch else DISPATCHABLE
    placeholders = ",".join("?" for _ in allowed)
    with get_db(db_path) as conn:
        cur = conn.execute(
            f"""UPDATE documents
                SET processing_status='processing', error_message=NULL,
                    analysis_result=NULL, updated_at=?
                WHERE id=? AND processing_status IN ({placeholders})""",
            (utcnow(), doc_id, *(s.value for s in allowed)),
        )
        if cur.rowcount == 0:
            row = conn.execute(
                "SELECT processing_status FROM documents WHERE id=?", (doc_id,)
            ).fetchone()
            if row is None:
                raise DocumentNotFoundError(doc_id)
            raise DocumentBusyError(doc_id, row["processing_status"])
    return get_document(doc_id, db_path)


def record_analysis(
    doc_id: str,
    result: AnalysisResult,
    status: ProcessingStatus,
    error: str | None = None,
    db_path: str | None = None,
) -> AccountingDocument:
    """Store an analysis result together with the terminal status it leads to."""
    status = ProcessingStatus(status)
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT processing_status FROM documents WHERE id=?", (doc_id,)
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(doc_id)
        error_message = validate_transition(row["processing_status"], status, error=error)
        conn.execute(
            """UPDATE documents
               SET processing_status=?, error_message=?, analysis_result=?, updated_at=?
               WHERE id=?""",
            (status.value, error_message, result.model_dump_json(), utcnow(), doc_id),
        )
    return get_document(doc_id, db_path)


def delete_document(doc_id: str, db_path: str | None = None) -> bool:
    """Delete a document record. Returns True if found."""
    with get_db(db_path) as conn:
        cur = conn.execute("DELETE FROM documents WHERE id=?", (doc_id,))
        # cascading delete handles transactions
    return cur.rowcount > 0
