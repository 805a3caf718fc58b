"""
Validating parse step for untrusted model output.

``parse_analysis_response`` never raises: it returns either a populated
``AnalysisResult`` or one with ``parse_error`` set and the raw text kept, so a
failed extraction can be diagnosed without calling the model again.
"""

import json
import logging
import math
import re
from typing import Any

from bookkeeping.models import AnalysisResult, PLStatement, TransactionTotals

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def _first(data: dict, *keys: str, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number, got a boolean")
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        number = float(value)
    except OverflowError:
        raise ValueError(f"{field} is out of range") from None
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number, got {value!r}") from None
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"{field} must be finite")
    return number


def _load_json(text: str) -> dict:
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        raise ValueError("No JSON object found in response")
    candidate = match.group(0)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as first_error:
        logger.warning("JSON parse failed, retrying without trailing commas: %s", first_error)
        try:
            return json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in response: {e}") from e


def _parse_pl(raw: Any) -> PLStatement | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("plStatement must be an object")
    # Some answers report expenses as negative numbers; P&L totals are magnitudes
    revenue = abs(_number(_first(raw, "totalRevenue", "total_revenue", default=0), "totalRevenue"))
    expenses = abs(_number(_first(raw, "totalExpenses", "total_expenses", default=0), "totalExpenses"))
    net = _first(raw, "netIncome", "net_income")
    categories = _first(raw, "categories", default={})
    if not isinstance(categories, dict):
        raise ValueError("plStatement.categories must be an object")
    return PLStatement(
        total_revenue=revenue,
        total_expenses=expenses,
        net_income=_number(net, "netIncome") if net is not None else revenue - expenses,
        categories={str(k): _number(v, f"categories.{k}") for k, v in categories.items()},
    )


def _parse_totals(raw: Any) -> TransactionTotals | None:
    if not isinstance(raw, dict):
        return None
    return TransactionTotals(
        total_debits=_number(_first(raw, "totalDebits", "total_debits", default=0), "totalDebits"),
        total_credits=_number(_first(raw, "totalCredits", "total_credits", default=0), "totalCredits"),
        transaction_count=int(_number(_first(raw, "transactionCount", "transaction_count", default=0), "transactionCount")),
    )


def parse_analysis_response(
    raw: str | None,
    fallback_document_type: str = "other",
    model: str | None = None,
    usage: dict | None = None,
) -> AnalysisResult:
    """Normalise a model answer into an AnalysisResult."""
    raw = raw or ""
    base = {"raw_response": raw, "model": model, "usage": usage or {}}

    try:
        data = _load_json(raw)
        if not isinstance(data, dict):
            raise ValueError("Top-level JSON value must be an object")

        transactions = _first(data, "transactions", default=[])
        if not isinstance(transactions, list):
            raise ValueError("transactions must be a list")

        summary = _first(data, "summary")
        totals = _parse_totals(_first(data, "totals"))
        if isinstance(summary, dict):
            # older prompt shape: summary holds the debit/credit totals
            totals = totals or _parse_totals(summary)
            summary = None

        insights = _first(data, "insights", default=[])
        if isinstance(insights, str):
            insights = [insights]
        if not isinstance(insights, list):
            raise ValueError("insights must be a list")

        return AnalysisResult(
            document_type=str(_first(data, "documentType", "document_type", default=fallback_document_type)),
            # line items are validated one by one at ingestion time
            transactions=[t if isinstance(t, dict) else {"_raw": t} for t in transactions],
            pl_statement=_parse_pl(_first(data, "plStatement", "pl_statement")),
            summary=str(summary) if summary is not None else None,
            totals=totals,
            insights=[str(i) for i in insights],
            **base,
        )
    except Exception as e:
        # anything the model sends back becomes a parse error, never an exception
        logger.warning("Could not parse analysis response (%d chars): %s", len(raw), e)
        return AnalysisResult(
            document_type=fallback_document_type,
            parse_error=str(e),
            **base,
        )
