"""
Pydantic models shared across the pipeline.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentType(str, Enum):
    BANK_STATEMENT = "bank_statement"
    CREDIT_CARD_STATEMENT = "credit_card_statement"
    RECEIPT = "receipt"
    INVOICE = "invoice"
    OTHER = "other"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    STORED = "stored"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StorageType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class Direction(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


# ── Blob storage ──────────────────────────────────────────────────────────────

class BlobHandle(BaseModel):
    storage_type: StorageType
    key: str


# ── Analysis ──────────────────────────────────────────────────────────────────

class PLStatement(BaseModel):
    total_revenue: float = Field(default=0.0, ge=0)
    total_expenses: float = Field(default=0.0, ge=0)
    net_income: float = 0.0
    categories: dict[str, float] = Field(default_factory=dict)

    @property
    def is_zero(self) -> bool:
        return self.total_revenue == 0 and self.total_expenses == 0


class TransactionTotals(BaseModel):
    total_debits: float = 0.0
    total_credits: float = 0.0
    transaction_count: int = 0


class AnalysisResult(BaseModel):
    document_type: str = DocumentType.OTHER.value
    transactions: list[dict[str, Any]] = Field(default_factory=list)
    pl_statement: Optional[PLStatement] = None
    summary: Optional[str] = None
    totals: Optional[TransactionTotals] = None
    insights: list[str] = Field(default_factory=list)
    raw_response: str = ""
    parse_error: Optional[str] = None
    model: Optional[str] = None
    usage: dict[str, Any] = Field(default_factory=dict)
    extracted_at: str = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _no_data_on_parse_error(self):
        if self.parse_error and (self.transactions or self.pl_statement is not None):
            raise ValueError("a result with parse_error cannot carry transactions or a P&L statement")
        return self


# ── Documents ─────────────────────────────────────────────────────────────────

class UploadMetadata(BaseModel):
    company: str
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900, le=2200)
    document_type: DocumentType = DocumentType.BANK_STATEMENT
    filename: str
    content_type: str = "application/octet-stream"
    size_bytes: int = 0
    uploaded_by: str


class AccountingDocument(BaseModel):
    id: str
    company: str
    month: int
    year: int
    document_type: DocumentType
    filename: str
    content_type: str = "application/octet-stream"
    size_bytes: int = 0
    storage_type: StorageType
    gridfs_file_id: Optional[str] = None
    supabase_path: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.UPLOADED
    error_message: Optional[str] = None
    analysis_result: Optional[AnalysisResult] = None
    uploaded_by: str
    created_at: str = ""
    updated_at: str = ""

    @model_validator(mode="after")
    def _one_storage_handle(self):
        if self.storage_type == StorageType.INTERNAL:
            ok = bool(self.gridfs_file_id) and not self.supabase_path
        else:
            ok = bool(self.supabase_path) and not self.gridfs_file_id
        if not ok:
            raise ValueError(f"storage handle does not match storage_type '{self.storage_type.value}'")
        return self

    @property
    def blob_handle(self) -> BlobHandle:
        key = self.gridfs_file_id if self.storage_type == StorageType.INTERNAL else self.supabase_path
        return BlobHandle(storage_type=self.storage_type, key=key)


# ── Companies & taxonomy ──────────────────────────────────────────────────────

class Address(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: str = "Philippines"
    postal_code: Optional[str] = None


class Company(BaseModel):
    id: str
    name: str
    legal_name: str
    slug: str
    tax_id: Optional[str] = None
    currency: str = "PHP"
    fiscal_year_end: int = Field(default=12, ge=1, le=12)
    status: str = "active"
    address: Address = Field(default_factory=Address)
    phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class Category(BaseModel):
    id: str
    name: str
    type: str
    parent_id: Optional[str] = None
    is_system: bool = True


# ── Transactions ──────────────────────────────────────────────────────────────

class Transaction(BaseModel):
    id: str
    statement_id: str
    company_id: Optional[str] = None
    txn_date: date
    description: str
    vendor: Optional[str] = None
    amount: float = Field(ge=0)
    direction: Direction
    check_no: Optional[str] = None
    balance: Optional[float] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    is_reconciled: bool = False
    reconciled_at: Optional[str] = None
    reconciled_by: Optional[str] = None
    tax_deductible: bool = True
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class ItemError(BaseModel):
    index: int
    message: str


class IngestReport(BaseModel):
    statement_id: str
    transactions: list[Transaction] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)
    replaced: int = 0
    kept_reconciled: int = 0


class TransactionSummary(BaseModel):
    total_debits: float = 0.0
    total_credits: float = 0.0
    debit_count: int = 0
    credit_count: int = 0
    net_amount: float = 0.0


# ── Pipeline outcomes ─────────────────────────────────────────────────────────

class ProcessingOutcome(BaseModel):
    document_id: str
    status: ProcessingStatus
    attempts: int = 0
    error_message: Optional[str] = None
    transactions_created: int = 0
    item_errors: list[ItemError] = Field(default_factory=list)


class DeletionOutcome(BaseModel):
    document_id: str
    blob_deleted: bool
    warnings: list[str] = Field(default_factory=list)


class DocumentDiagnostic(BaseModel):
    id: str
    month: int
    year: int
    document_type: str
    processing_status: str
    error_message: Optional[str] = None
    storage_type: str
    has_analysis_result: bool = False
    transaction_count: int = 0
    pl_statement: Optional[PLStatement] = None
    insights_count: int = 0
    raw_response: Optional[str] = None
    parse_error: Optional[str] = None
    created_at: str = ""


class DiagnosticCounts(BaseModel):
    total_documents: int = 0
    completed: int = 0
    failed: int = 0
    stored: int = 0
    with_pl_data: int = 0
    with_zero_pl: int = 0
    with_transactions: int = 0
    with_raw_response: int = 0
    with_parse_error: int = 0


class DiagnosticReport(BaseModel):
    company: Optional[str] = None
    summary: DiagnosticCounts = Field(default_factory=DiagnosticCounts)
    documents: list[DocumentDiagnostic] = Field(default_factory=list)
