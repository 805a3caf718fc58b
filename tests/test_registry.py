"""
Tests for bookkeeping.documents.registry — document records and status updates.
"""

import pytest

from bookkeeping.database import init_db, get_db
from bookkeeping.documents import registry
from bookkeeping.exceptions import (
    DocumentBusyError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from bookkeeping.models import (
    AnalysisResult,
    BlobHandle,
    PLStatement,
    ProcessingStatus,
    StorageType,
    UploadMetadata,
)


# ── helper fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def tmp_db(tmp_path):
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    return db_path


def _upload(company="murphy_web_services", month=3, year=2024, filename="bpi_march.pdf"):
    return UploadMetadata(
        company=company,
        month=month,
        year=year,
        filename=filename,
        content_type="application/pdf",
        size_bytes=1024,
        uploaded_by="ops@example.com",
    )


def _create(db_path, handle=None, **kwargs):
    handle = handle or BlobHandle(storage_type=StorageType.INTERNAL, key="blob-1")
    return registry.create_document(_upload(**kwargs), handle, db_path=db_path)


# ── tests ────────────────────────────────────────────────────────────────────

class TestCreateDocument:
    def test_internal_handle(self, tmp_db):
        doc = _create(tmp_db)
        assert doc.processing_status == ProcessingStatus.UPLOADED
        assert doc.gridfs_file_id == "blob-1"
        assert doc.supabase_path is None
        assert doc.blob_handle.key == "blob-1"

    def test_external_handle(self, tmp_db):
        handle = BlobHandle(storage_type=StorageType.EXTERNAL, key="accounting/murphy/2024/03/1.pdf")
        doc = _create(tmp_db, handle=handle)
        stored = registry.get_document(doc.id, tmp_db)
        assert stored.storage_type == StorageType.EXTERNAL
        assert stored.supabase_path == "accounting/murphy/2024/03/1.pdf"
        assert stored.gridfs_file_id is None

    def test_cannot_start_processing(self, tmp_db):
        handle = BlobHandle(storage_type=StorageType.INTERNAL, key="b")
        with pytest.raises(ValidationError):
            registry.create_document(_upload(), handle, status=ProcessingStatus.PROCESSING, db_path=tmp_db)

    def test_get_missing_raises(self, tmp_db):
        assert registry.find_document("nope", tmp_db) is None
        with pytest.raises(DocumentNotFoundError):
            registry.get_document("nope", tmp_db)


class TestListDocuments:
    def test_ordered_by_period_desc(self, tmp_db):
        _create(tmp_db, month=1, year=2024)
        _create(tmp_db, month=11, year=2023)
        _create(tmp_db, month=3, year=2024)
        docs = registry.list_documents(db_path=tmp_db)
        assert [(d.year, d.month) for d in docs] == [(2024, 3), (2024, 1), (2023, 11)]

    def test_newest_upload_first_within_period(self, tmp_db):
        first = _create(tmp_db, filename="a.pdf")
        second = _create(tmp_db, filename="b.pdf")
        with get_db(tmp_db) as conn:
            conn.execute("UPDATE documents SET created_at='2024-04-01' WHERE id=?", (first.id,))
            conn.execute("UPDATE documents SET created_at='2024-04-02' WHERE id=?", (second.id,))
        docs = registry.list_documents(db_path=tmp_db)
        assert [d.filename for d in docs] == ["b.pdf", "a.pdf"]

    def test_filter_by_company_and_status(self, tmp_db):
        a = _create(tmp_db, company="alpha")
        _create(tmp_db, company="beta")
        registry.update_status(a.id, ProcessingStatus.STORED, db_path=tmp_db)

        assert len(registry.list_documents(company="alpha", db_path=tmp_db)) == 1
        stored = registry.list_documents(status=ProcessingStatus.STORED, db_path=tmp_db)
        assert [d.id for d in stored] == [a.id]
        both = registry.list_documents(
            status=[ProcessingStatus.STORED, ProcessingStatus.UPLOADED], db_path=tmp_db
        )
        assert len(both) == 2

    def test_limit(self, tmp_db):
        for month in (1, 2, 3):
            _create(tmp_db, month=month)
        assert len(registry.list_documents(limit=2, db_path=tmp_db)) == 2


class TestStatusUpdates:
    def test_update_status(self, tmp_db):
        doc = _create(tmp_db)
        updated = registry.update_status(doc.id, ProcessingStatus.STORED, db_path=tmp_db)
        assert updated.processing_status == ProcessingStatus.STORED

    def test_failed_keeps_error(self, tmp_db):
        doc = _create(tmp_db)
        updated = registry.update_status(doc.id, ProcessingStatus.FAILED, error="bad scan", db_path=tmp_db)
        assert updated.error_message == "bad scan"

    def test_illegal_transition(self, tmp_db):
        doc = _create(tmp_db)
        with pytest.raises(InvalidStatusTransitionError):
            registry.update_status(doc.id, ProcessingStatus.COMPLETED, db_path=tmp_db)

    def test_update_missing(self, tmp_db):
        with pytest.raises(DocumentNotFoundError):
            registry.update_status("nope", ProcessingStatus.STORED, db_path=tmp_db)


class TestClaimForProcessing:
    def test_claim_moves_to_processing(self, tmp_db):
        doc = _create(tmp_db)
        claimed = registry.claim_for_processing(doc.id, db_path=tmp_db)
        assert claimed.processing_status == ProcessingStatus.PROCESSING

    def test_second_claim_is_busy(self, tmp_db):
        doc = _create(tmp_db)
        registry.claim_for_processing(doc.id, db_path=tmp_db)
        with pytest.raises(DocumentBusyError) as exc:
            registry.claim_for_processing(doc.id, db_path=tmp_db)
        assert exc.value.details["status"] == "processing"

    def test_terminal_needs_redispatch(self, tmp_db):
        doc = _create(tmp_db)
        registry.update_status(doc.id, ProcessingStatus.FAILED, error="x", db_path=tmp_db)
        with pytest.raises(DocumentBusyError):
            registry.claim_for_processing(doc.id, db_path=tmp_db)

        claimed = registry.claim_for_processing(doc.id, redispatch=True, db_path=tmp_db)
        assert claimed.processing_status == ProcessingStatus.PROCESSING
        assert claimed.error_message is None

    def test_claim_missing(self, tmp_db):
        with pytest.raises(DocumentNotFoundError):
            registry.claim_for_processing("nope", db_path=tmp_db)


class TestRecordAnalysis:
    def test_completed_with_result(self, tmp_db):
        doc = _create(tmp_db)
        registry.claim_for_processing(doc.id, db_path=tmp_db)
        result = AnalysisResult(
            document_type="bank_statement",
            pl_statement=PLStatement(total_revenue=100, total_expenses=40, net_income=60),
            raw_response="{}",
        )
        stored = registry.record_analysis(doc.id, result, ProcessingStatus.COMPLETED, db_path=tmp_db)
        assert stored.processing_status == ProcessingStatus.COMPLETED
        assert stored.analysis_result.pl_statement.net_income == 60

    def test_redispatch_clears_previous_result(self, tmp_db):
        doc = _create(tmp_db)
        registry.claim_for_processing(doc.id, db_path=tmp_db)
        registry.record_analysis(doc.id, AnalysisResult(raw_response="{}"), ProcessingStatus.COMPLETED, db_path=tmp_db)

        claimed = registry.claim_for_processing(doc.id, redispatch=True, db_path=tmp_db)
        assert claimed.analysis_result is None

    def test_requires_processing(self, tmp_db):
        doc = _create(tmp_db)
        with pytest.raises(InvalidStatusTransitionError):
            registry.record_analysis(doc.id, AnalysisResult(), ProcessingStatus.COMPLETED, db_path=tmp_db)


class TestDeleteDocument:
    def test_delete(self, tmp_db):
        doc = _create(tmp_db)
        assert registry.delete_document(doc.id, tmp_db) is True
        assert registry.find_document(doc.id, tmp_db) is None

    def test_delete_missing(self, tmp_db):
        assert registry.delete_document("nope", tmp_db) is False
