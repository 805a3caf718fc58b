"""
FastAPI application — companies, document upload/processing/deletion,
diagnostics and transaction reconciliation.

Authentication happens upstream; the authenticated actor arrives in the
``X-User-Id`` header and is required on every mutating call.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.models import (
    CompanyListResponse,
    ConfidentReconcileRequest,
    CreateCompanyRequest,
    DocumentListResponse,
    ReconcileRequest,
    ReprocessRequest,
    TransactionListResponse,
    UploadResponse,
)
from bookkeeping import companies
from bookkeeping.analysis import engine
from bookkeeping.database import init_db
from bookkeeping.documents import registry
from bookkeeping.exceptions import BookkeepingError
from bookkeeping.models import (
    AccountingDocument,
    Category,
    Company,
    DeletionOutcome,
    DiagnosticReport,
    Direction,
    DocumentType,
    ProcessingOutcome,
    ProcessingStatus,
    StorageType,
    Transaction,
    TransactionSummary,
)
from bookkeeping.pipeline import orchestrator
from bookkeeping.pipeline.diagnostics import diagnostic_summary
from bookkeeping.reconciliation import service as reconciliation
from bookkeeping.reconciliation.taxonomy import list_categories
from bookkeeping.storage import object_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if not engine.is_configured():
        logger.warning("OPENAI_API_KEY is not set - uploads will be stored without analysis.")
    yield


app = FastAPI(
    title="Bookkeeping Pipeline",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookkeepingError)
async def bookkeeping_exception_handler(request: Request, exc: BookkeepingError):
    logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def require_actor(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


# ── companies ────────────────────────────────────────────────────────────────

@app.post("/companies", response_model=Company, status_code=201)
async def create_company(request: CreateCompanyRequest, actor: str = Depends(require_actor)):
    return companies.create_company(**request.model_dump())


@app.get("/companies", response_model=CompanyListResponse)
async def list_companies(status: Optional[str] = None):
    return CompanyListResponse(companies=companies.list_companies(status=status))


# ── documents ────────────────────────────────────────────────────────────────

@app.post("/documents", response_model=UploadResponse, status_code=201)
async def upload_document(
    file: UploadFile,
    company: str = Form(...),
    month: int = Form(...),
    year: int = Form(...),
    document_type: DocumentType = Form(DocumentType.BANK_STATEMENT),
    storage_type: Optional[StorageType] = Form(None),
    process: bool = Form(True),
    actor: str = Depends(require_actor),
):
    """Store an uploaded statement/receipt and run it through analysis."""
    content = await file.read()
    doc = await orchestrator.upload_document(
        content,
        filename=file.filename or "document.pdf",
        company=company,
        month=month,
        year=year,
        uploaded_by=actor,
        document_type=document_type,
        content_type=file.content_type or "application/octet-stream",
        storage_type=storage_type,
        process=process,
    )

    warning = None
    if doc.processing_status == ProcessingStatus.STORED:
        warning = "Analysis service is not configured. The document is stored and can be processed later."
    elif doc.processing_status == ProcessingStatus.FAILED:
        warning = "Document stored but analysis failed. Processing can be retried."
    return UploadResponse(document=doc, message=f"Document {doc.processing_status.value}", warning=warning)


@app.get("/documents", response_model=DocumentListResponse)
async def list_documents(company: Optional[str] = None, status: Optional[ProcessingStatus] = None):
    return DocumentListResponse(documents=registry.list_documents(company=company, status=status))


@app.get("/documents/{doc_id}", response_model=AccountingDocument)
async def get_document(doc_id: str):
    return registry.get_document(doc_id)


@app.get("/documents/{doc_id}/file")
async def download_document(doc_id: str):
    """Return the stored bytes of a document with its original content type."""
    doc, data = await orchestrator.fetch_document_file(doc_id)
    return Response(
        content=data,
        media_type=doc.content_type,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(doc.filename)}"},
    )


@app.post("/documents/{doc_id}/process", response_model=ProcessingOutcome)

async def process_document(doc_id: str, actor: str = Depends(require_actor)):
    """Dispatch (or explicitly re-dispatch) analysis for one document."""
    logger.info("Dispatch of %s requested by %s", doc_id, actor)
    return await orchestrator.process_document(doc_id, redispatch=True)


@app.post("/documents/reprocess", response_model=list[ProcessingOutcome])
async def reprocess_documents(request: ReprocessRequest, actor: str = Depends(require_actor)):
    return await orchestrator.reprocess_documents(company=request.company, limit=request.limit)


@app.delete("/documents/{doc_id}", response_model=DeletionOutcome)
async def delete_document(doc_id: str, actor: str = Depends(require_actor)):
    return await orchestrator.delete_document(doc_id)


@app.post("/documents/{doc_id}/reconcile", response_model=list[Transaction])
async def reconcile_confident(
    doc_id: str,
    request: ConfidentReconcileRequest,
    actor: str = Depends(require_actor),
):
    registry.get_document(doc_id)
    return reconciliation.reconcile_confident(doc_id, request.min_confidence, actor)


# ── diagnostics ──────────────────────────────────────────────────────────────

@app.get("/diagnostics", response_model=DiagnosticReport)
async def diagnostics(company: Optional[str] = None):
    return diagnostic_summary(company=company)


# ── transactions ─────────────────────────────────────────────────────────────

@app.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    statement: Optional[str] = None,
    company_id: Optional[str] = None,
    direction: Optional[Direction] = None,
    reconciled: Optional[bool] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
):
    txns = reconciliation.list_transactions(
        statement_id=statement,
        company_id=company_id,
        direction=direction,
        is_reconciled=reconciled,
        limit=limit,
        offset=(page - 1) * limit,
    )
    summary = reconciliation.summarize_transactions(statement_id=statement, company_id=company_id)
    return TransactionListResponse(transactions=txns, summary=summary)


@app.get("/transactions/summary", response_model=TransactionSummary)
async def transaction_summary(statement: Optional[str] = None, company_id: Optional[str] = None):
    return reconciliation.summarize_transactions(statement_id=statement, company_id=company_id)


@app.get("/transactions/{txn_id}", response_model=Transaction)
async def get_transaction(txn_id: str):
    return reconciliation.get_transaction(txn_id)


@app.post("/transactions/{txn_id}/reconcile", response_model=Transaction)
async def reconcile_transaction(txn_id: str, request: ReconcileRequest, actor: str = Depends(require_actor)):
    return reconciliation.reconcile_transaction(
        txn_id,
        category=request.category,
        subcategory=request.subcategory,
        actor=actor,
        notes=request.notes,
    )


@app.get("/categories", response_model=list[Category])
async def categories():
    return list_categories()


# ── GET /health ──────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "analysis_configured": engine.is_configured(),
        "external_storage_configured": object_store.is_configured(),
    }
