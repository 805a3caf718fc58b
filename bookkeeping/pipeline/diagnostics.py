"""
Diagnostic view over the document registry.

Makes silent outcomes (all-zero P&L, unparsable answers, no transactions)
countable without opening each record. Read-only.
"""

from bookkeeping import config
from bookkeeping.documents.registry import list_documents
from bookkeeping.models import (
    AccountingDocument,
    DiagnosticCounts,
    DiagnosticReport,
    DocumentDiagnostic,
    ProcessingStatus,
)


def preview(text: str | None, limit: int | None = None) -> str | None:
    """Cap raw model output for display; storage always keeps the full text."""
    if text is None:
        return None
    limit = limit if limit is not None else config.RAW_RESPONSE_PREVIEW_CHARS
    return text[:limit]


def describe_document(doc: AccountingDocument) -> DocumentDiagnostic:
    result = doc.analysis_result
    return DocumentDiagnostic(
        id=doc.id,
        month=doc.month,
        year=doc.year,
        document_type=doc.document_type.value,
        processing_status=doc.processing_status.value,
        error_message=doc.error_message,
        storage_type=doc.storage_type.value,
        has_analysis_result=result is not None,
        transaction_count=len(result.transactions) if result else 0,
        pl_statement=result.pl_statement if result else None,
        insights_count=len(result.insights) if result else 0,
        raw_response=preview(result.raw_response) if result and result.raw_response else None,
        parse_error=result.parse_error if result else None,
        created_at=doc.created_at,
    )


def diagnostic_summary(company: str | None = None, db_path: str | None = None) -> DiagnosticReport:
    docs = list_documents(company=company, db_path=db_path)
    counts = DiagnosticCounts(total_documents=len(docs))

    for doc in docs:
        status = doc.processing_status
        if status == ProcessingStatus.COMPLETED:
            counts.completed += 1
        elif status == ProcessingStatus.FAILED:
            counts.failed += 1
        elif status in (ProcessingStatus.STORED, ProcessingStatus.UPLOADED):
            counts.stored += 1

        result = doc.analysis_result
        if result is None:
            continue
        pl = result.pl_statement
        if pl is not None:
            if pl.is_zero:
                counts.with_zero_pl += 1
            else:
                counts.with_pl_data += 1
        if result.transactions:
            counts.with_transactions += 1
        if result.raw_response:
            counts.with_raw_response += 1
        if result.parse_error:
            counts.with_parse_error += 1

    return DiagnosticReport(
        company=company,
        summary=counts,
        documents=[describe_document(d) for d in docs],
    )
