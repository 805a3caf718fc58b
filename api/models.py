"""
API request / response models for FastAPI.
"""

from typing import Optional

from pydantic import BaseModel, Field

from bookkeeping.models import (
    AccountingDocument,
    Address,
    Company,
    Transaction,
    TransactionSummary,
)


class CreateCompanyRequest(BaseModel):
    name: str
    legal_name: Optional[str] = None
    slug: Optional[str] = None
    tax_id: Optional[str] = None
    currency: str = "PHP"
    fiscal_year_end: int = 12
    address: Address = Field(default_factory=Address)
    phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None


class CompanyListResponse(BaseModel):
    companies: list[Company] = Field(default_factory=list)


class DocumentListResponse(BaseModel):
    documents: list[AccountingDocument] = Field(default_factory=list)


class UploadResponse(BaseModel):
    document: AccountingDocument
    message: str = ""
    warning: Optional[str] = None


class ReprocessRequest(BaseModel):
    company: Optional[str] = None
    limit: int = Field(default=10, ge=1, le=100)


class ReconcileRequest(BaseModel):
    category: str
    subcategory: Optional[str] = None
    notes: Optional[str] = None


class ConfidentReconcileRequest(BaseModel):
    min_confidence: float = Field(default=0.9, ge=0, le=1)


class TransactionListResponse(BaseModel):
    transactions: list[Transaction] = Field(default_factory=list)
    summary: TransactionSummary = Field(default_factory=TransactionSummary)
