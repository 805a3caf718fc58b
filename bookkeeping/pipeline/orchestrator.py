"""
Document lifecycle orchestrator.

    upload:  bytes → blob store → registry (uploaded)
    process: claim (processing) → fetch bytes → analysis (both with bounded retry)
               → parse error:  failed, raw response kept, no transactions
               → success:      transactions ingested, completed
    download: record → bytes from the tagged backend
    delete:  blob delete (best effort) → record delete (always)
"""

import asyncio
import logging

from bookkeeping import config
from bookkeeping.analysis import engine
from bookkeeping.documents import registry
from bookkeeping.exceptions import (
    AnalysisDispatchError,
    DocumentNotFoundError,
    StorageIOError,
    ValidationError,
)
from bookkeeping.models import (
    AccountingDocument,
    AnalysisResult,
    DeletionOutcome,
    DocumentType,
    ProcessingOutcome,
    ProcessingStatus,
    StorageType,
    UploadMetadata,
)
from bookkeeping.reconciliation.service import ingest_transactions
from bookkeeping.storage.base import get_blob_store, with_timeout

logger = logging.getLogger(__name__)


# ── upload ────────────────────────────────────────────────────────────────────

async def upload_document(
    data: bytes,
    filename: str,
    company: str,
    month: int,
    year: int,
    uploaded_by: str,
    document_type: DocumentType | str = DocumentType.BANK_STATEMENT,
    content_type: str = "application/octet-stream",
    storage_type: StorageType | str | None = None,
    process: bool = True,
    db_path: str | None = None,
) -> AccountingDocument:
    """
    Store the bytes, register the document and (optionally) analyse it.

    A failed blob put aborts the upload before any record exists.
    """
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"File too large. Maximum size: {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
            details={"size": len(data), "max_size": config.MAX_UPLOAD_BYTES},
        )
    try:
        upload = UploadMetadata(
            company=company,
            month=month,
            year=year,
            document_type=DocumentType(document_type),
            filename=filename,
            content_type=content_type,
            size_bytes=len(data),
            uploaded_by=uploaded_by,
        )
    except ValueError as e:
        raise ValidationError(f"Invalid upload metadata: {e}") from e

    store = get_blob_store(storage_type or config.STORAGE_BACKEND, db_path=db_path)
    metadata = {
        "content_type": content_type,
        "company": company,
        "month": month,
        "year": year,
        "document_type": upload.document_type.value,
        "uploaded_by": uploaded_by,
    }
    handle = await with_timeout(store.put(data, filename, metadata), "put")

    try:
        doc = registry.create_document(upload, handle, db_path=db_path)
    except Exception:
        logger.error("Registering %s failed; removing stored blob %s", filename, handle.key)
        try:
            await with_timeout(store.delete(handle), "delete")
        except StorageIOError as e:
            logger.warning("Could not remove orphaned blob %s: %s", handle.key, e.message)
        raise

    if not engine.is_configured():
        logger.warning("Analysis service not configured - %s stored without processing", doc.id)
        return registry.update_status(doc.id, ProcessingStatus.STORED, db_path=db_path)

    if process:
        await process_document(doc.id, db_path=db_path)
        return registry.get_document(doc.id, db_path)
    return doc


# ── processing ────────────────────────────────────────────────────────────────

async def _fetch_with_retry(doc: AccountingDocument, db_path: str | None = None) -> bytes:
    """Read the document's bytes, retrying timeouts and dropped connections."""
    store = get_blob_store(doc.storage_type, db_path=db_path)
    attempts = max(1, config.MAX_ANALYSIS_ATTEMPTS)
    for attempt in range(attempts):
        try:
            return await with_timeout(store.get(doc.blob_handle), "get")
        except StorageIOError as e:
            logger.warning("Blob read %d/%d for %s failed: %s", attempt + 1, attempts, doc.id, e.message)
            if not e.retryable or attempt == attempts - 1:
                raise
            await asyncio.sleep(config.RETRY_BACKOFF_SECONDS * 2 ** attempt)
    raise AssertionError("unreachable")


async def _analyze_with_retry(doc: AccountingDocument, data: bytes) -> tuple[AnalysisResult, int]:
    """Call the engine, retrying dispatch failures; parse failures are returned, not retried."""
    attempts = max(1, config.MAX_ANALYSIS_ATTEMPTS)
    for attempt in range(attempts):
        try:
            result = await engine.analyze(
                data,
                filename=doc.filename,
                document_type=doc.document_type.value,
                company=doc.company,
                month=doc.month,
                year=doc.year,
            )
            return result, attempt + 1
        except AnalysisDispatchError as e:
            logger.warning("Analysis attempt %d/%d for %s failed: %s", attempt + 1, attempts, doc.id, e.message)
            if not e.retryable or attempt == attempts - 1:
                e.details["attempts"] = attempt + 1
                raise
            await asyncio.sleep(config.RETRY_BACKOFF_SECONDS * 2 ** attempt)
    raise AssertionError("unreachable")


def _fail(doc: AccountingDocument, message: str, attempts: int = 0, db_path: str | None = None) -> ProcessingOutcome:
    registry.update_status(doc.id, ProcessingStatus.FAILED, error=message, db_path=db_path)
    return ProcessingOutcome(
        document_id=doc.id, status=ProcessingStatus.FAILED, attempts=attempts, error_message=message,
    )


async def process_document(
    doc_id: str,
    redispatch: bool = False,
    db_path: str | None = None,
) -> ProcessingOutcome:
    """
    Run analysis and reconciliation for one document.

    Only one dispatch per document can be in flight: the claim into
    ``processing`` fails with DocumentBusyError for a concurrent caller.
    Once claimed, the document always leaves ``processing``.
    """
    doc = registry.claim_for_processing(doc_id, redispatch=redispatch, db_path=db_path)
    logger.info("Processing document %s (%s)", doc.id, doc.filename)

    try:
        return await _run_claimed(doc, db_path)
    except Exception as e:
        logger.exception("Unexpected error while processing %s", doc.id)
        return _fail(doc, f"Unexpected processing error: {e}", db_path=db_path)


async def _run_claimed(doc: AccountingDocument, db_path: str | None) -> ProcessingOutcome:
    try:
        data = await _fetch_with_retry(doc, db_path)
    except StorageIOError as e:
        logger.error("Could not retrieve %s from storage: %s", doc.id, e.message)
        return _fail(doc, f"Could not retrieve file from storage: {e.message}", db_path=db_path)

    try:
        result, attempts = await _analyze_with_retry(doc, data)
    except AnalysisDispatchError as e:
        attempts = e.details.get("attempts", 1)
        return _fail(doc, f"Analysis dispatch failed after {attempts} attempt(s): {e.message}", attempts, db_path)

    if result.parse_error:
        registry.record_analysis(
            doc.id, result, ProcessingStatus.FAILED,
            error=f"Could not parse analysis response: {result.parse_error}",
            db_path=db_path,
        )
        return ProcessingOutcome(
            document_id=doc.id,
            status=ProcessingStatus.FAILED,
            attempts=attempts,
            error_message=result.parse_error,
        )

    try:
        report = ingest_transactions(doc, result, db_path=db_path)
    except Exception as e:
        logger.exception("Transaction ingestion failed for %s", doc.id)
        registry.record_analysis(
            doc.id, result, ProcessingStatus.FAILED,
            error=f"Transaction ingestion failed: {e}", db_path=db_path,
        )
        return ProcessingOutcome(
            document_id=doc.id, status=ProcessingStatus.FAILED, attempts=attempts, error_message=str(e),
        )

    registry.record_analysis(doc.id, result, ProcessingStatus.COMPLETED, db_path=db_path)
    if result.pl_statement is None:
        logger.warning("Document %s completed without a P&L statement", doc.id)
    elif result.pl_statement.is_zero:
        logger.warning("Document %s completed with an all-zero P&L statement", doc.id)
    logger.info("Document %s completed: %d transactions", doc.id, len(report.transactions))

    return ProcessingOutcome(
        document_id=doc.id,
        status=ProcessingStatus.COMPLETED,
        attempts=attempts,
        transactions_created=len(report.transactions),
        item_errors=report.errors,
    )


async def reprocess_documents(
    company: str | None = None,
    limit: int = 10,
    db_path: str | None = None,
) -> list[ProcessingOutcome]:
    """Re-dispatch documents that are waiting or failed, oldest period last."""
    docs = registry.list_documents(
        company=company,
        status=[ProcessingStatus.UPLOADED, ProcessingStatus.STORED, ProcessingStatus.FAILED],
        limit=limit,
        db_path=db_path,
    )
    outcomes = []
    for doc in docs:
        redispatch = doc.processing_status == ProcessingStatus.FAILED
        outcomes.append(await process_document(doc.id, redispatch=redispatch, db_path=db_path))
    return outcomes


# ── download ──────────────────────────────────────────────────────────────────

async def fetch_document_file(doc_id: str, db_path: str | None = None) -> tuple[AccountingDocument, bytes]:
    """Return a document and its stored bytes, read from the backend its tag names."""
    doc = registry.get_document(doc_id, db_path)
    data = await _fetch_with_retry(doc, db_path)
    return doc, data


# ── deletion ──────────────────────────────────────────────────────────────────

async def delete_document(doc_id: str, db_path: str | None = None) -> DeletionOutcome:
    """
    Delete a document's bytes and its record.

    Blob removal is best effort: any storage failure (including the blob
    already being gone) becomes a warning. The record is always deleted.
    """
    doc = registry.get_document(doc_id, db_path)
    outcome = DeletionOutcome(document_id=doc.id, blob_deleted=False)

    try:
        store = get_blob_store(doc.storage_type, db_path=db_path)
        await with_timeout(store.delete(doc.blob_handle), "delete")
        outcome.blob_deleted = True
    except StorageIOError as e:
        logger.warning("Failed to delete blob %s for document %s: %s", doc.blob_handle.key, doc.id, e.message)
        outcome.warnings.append(e.message)
    finally:
        if not registry.delete_document(doc.id, db_path):
            raise DocumentNotFoundError(doc.id)

    logger.info("Deleted document %s", doc.id)
    return outcome
