"""
Exception hierarchy for the bookkeeping pipeline.

Every error carries a stable error code and an HTTP status so the API layer
can render it without knowing the concrete type.
"""

from typing import Any, Optional


class BookkeepingError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        error_code: Unique error code (e.g. BK-101)
        http_status: Status code used when the error reaches the API
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "BK-000"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# ── Not found (BK-1xx) ───────────────────────────────────────────────────────

class NotFoundError(BookkeepingError):
    error_code = "BK-100"
    http_status = 404

    def __init__(self, kind: str, ident: str, **kwargs):
        super().__init__(f"{kind} {ident} not found", details={"id": ident}, **kwargs)


class DocumentNotFoundError(NotFoundError):
    error_code = "BK-101"

    def __init__(self, document_id: str, **kwargs):
        super().__init__("Document", document_id, **kwargs)


class TransactionNotFoundError(NotFoundError):
    error_code = "BK-102"

    def __init__(self, transaction_id: str, **kwargs):
        super().__init__("Transaction", transaction_id, **kwargs)


class CompanyNotFoundError(NotFoundError):
    error_code = "BK-103"

    def __init__(self, company: str, **kwargs):
        super().__init__("Company", company, **kwargs)


class CategoryNotFoundError(NotFoundError):
    error_code = "BK-104"

    def __init__(self, category: str, **kwargs):
        super().__init__("Category", category, **kwargs)


# ── Storage (BK-2xx) ─────────────────────────────────────────────────────────

class StorageIOError(BookkeepingError):
    """
    Blob put/get/delete failed.

    ``retryable`` marks transient failures (timeouts, dropped connections)
    that a repeat call may get past.
    """
    error_code = "BK-200"
    http_status = 502

    def __init__(self, message: str = "Blob storage operation failed", retryable: bool = False, **kwargs):
        self.retryable = retryable
        super().__init__(message, **kwargs)


class BlobNotFoundError(StorageIOError):
    """The blob referenced by a handle does not exist in its store."""
    error_code = "BK-201"
    http_status = 404

    def __init__(self, handle: str, **kwargs):
        super().__init__(f"Blob {handle} not found", details={"handle": handle}, **kwargs)


# ── Analysis (BK-3xx) ────────────────────────────────────────────────────────

class AnalysisDispatchError(BookkeepingError):
    """
    The LLM call itself failed (timeout, network, rate limit, provider error).

    ``retryable`` is False for failures that a repeat call cannot fix, such as
    a missing or rejected API key.
    """
    error_code = "BK-300"
    http_status = 503

    def __init__(self, message: str = "Analysis dispatch failed", retryable: bool = True, **kwargs):
        self.retryable = retryable
        super().__init__(message, **kwargs)


class AnalysisParseError(BookkeepingError):
    """The model answered, but its output could not be turned into structured data."""
    error_code = "BK-301"
    http_status = 422

    def __init__(self, message: str = "Could not parse analysis response", **kwargs):
        super().__init__(message, **kwargs)


class AnalysisNotConfiguredError(AnalysisDispatchError):
    error_code = "BK-302"

    def __init__(self, **kwargs):
        super().__init__(
            "Analysis service not configured - OPENAI_API_KEY missing",
            retryable=False,
            **kwargs,
        )


# ── Validation / state (BK-4xx) ──────────────────────────────────────────────

class ValidationError(BookkeepingError):
    """A schema invariant would be violated; nothing was persisted."""
    error_code = "BK-400"
    http_status = 400

    def __init__(self, message: str = "Validation failed", **kwargs):
        super().__init__(message, **kwargs)


class ReconciliationItemError(ValidationError):
    """A single extracted line item could not be turned into a transaction."""
    error_code = "BK-401"
    http_status = 422

    def __init__(self, index: int, message: str, **kwargs):
        self.index = index
        super().__init__(f"Line item {index}: {message}", details={"index": index}, **kwargs)


class InvalidStatusTransitionError(BookkeepingError):
    error_code = "BK-402"
    http_status = 409

    def __init__(self, current: str, requested: str, **kwargs):
        super().__init__(
            f"Cannot move document from '{current}' to '{requested}'",
            details={"current": current, "requested": requested},
            **kwargs,
        )


class DocumentBusyError(BookkeepingError):
    """Another dispatch already owns this document."""
    error_code = "BK-403"
    http_status = 409

    def __init__(self, document_id: str, status: str, **kwargs):
        super().__init__(
            f"Document {document_id} cannot be dispatched while '{status}'",
            details={"document_id": document_id, "status": status},
            **kwargs,
        )


class DuplicateCompanyError(BookkeepingError):
    error_code = "BK-404"
    http_status = 409

    def __init__(self, field: str, value: str, **kwargs):
        super().__init__(
            f"A company with {field} '{value}' already exists",
            details={field: value},
            **kwargs,
        )
