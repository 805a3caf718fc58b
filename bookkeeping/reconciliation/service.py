"""
Transaction reconciliation — turn analysed line items into transactions and
let people confirm (reconcile) their categories.
"""

import logging
import sqlite3
import uuid
from collections import Counter
from typing import Optional

from bookkeeping.companies import find_company_by_slug
from bookkeeping.database import get_db
from bookkeeping.exceptions import (
    AnalysisParseError,
    ReconciliationItemError,
    TransactionNotFoundError,
    ValidationError,
)
from bookkeeping.models import (
    AccountingDocument,
    AnalysisResult,
    Direction,
    IngestReport,
    ItemError,
    Transaction,
    TransactionSummary,
    utcnow,
)
from bookkeeping.reconciliation.categorizer import categorize
from bookkeeping.reconciliation.lineitems import (
    extract_vendor,
    infer_direction,
    parse_amount,
    parse_txn_date,
)
from bookkeeping.reconciliation.taxonomy import category_id, resolve_assignment

logger = logging.getLogger(__name__)

MANUAL_CONFIDENCE = 1.0


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    data = dict(row)
    data["is_reconciled"] = bool(data["is_reconciled"])
    data["tax_deductible"] = bool(data["tax_deductible"])
    return Transaction(**data)


def _signature(txn: Transaction) -> tuple:
    return (txn.txn_date.isoformat(), txn.description, round(txn.amount, 2), txn.direction.value)


def build_transaction(
    index: int,
    item: dict,
    document: AccountingDocument,
    company_id: Optional[str],
) -> Transaction:
    """Validate one line item; raises ReconciliationItemError if it is unusable."""
    try:
        if "_raw" in item:
            raise ValueError("line item is not an object")
        description = str(item.get("description") or "").strip()
        if not description:
            raise ValueError("description is missing")
        txn_date = parse_txn_date(item.get("date") or item.get("txnDate"), default_year=document.year)
        signed = parse_amount(item.get("amount"))
        direction = infer_direction(item, signed, description)
        balance = item.get("balance")
        balance = parse_amount(balance) if balance not in (None, "") else None
    except (TypeError, ValueError, OverflowError) as e:
        raise ReconciliationItemError(index, str(e)) from e

    guess = categorize(description, direction, item.get("category"))
    now = utcnow()
    return Transaction(
        id=str(uuid.uuid4()),
        statement_id=document.id,
        company_id=company_id,
        txn_date=txn_date,
        description=description,
        vendor=extract_vendor(description),
        amount=abs(signed),
        direction=direction,
        check_no=str(item["checkNo"]) if item.get("checkNo") else None,
        balance=balance,
        category_id=category_id(guess.category),
        subcategory_id=category_id(guess.subcategory) if guess.subcategory else None,
        confidence=guess.confidence,
        created_at=now,
        updated_at=now,
    )


def ingest_transactions(
    document: AccountingDocument,
    result: AnalysisResult,
    db_path: str | None = None,
) -> IngestReport:
    """
    Persist the result's line items as unreconciled transactions.

    Bad items are collected in ``errors`` and do not stop the rest. The
    statement's earlier unreconciled transactions are replaced in the same
    transaction, so a re-dispatch never leaves stale rows behind. Items that
    match an already reconciled transaction (same date, description, amount
    and direction) keep that row instead, one item per reconciled row.
    """
    if result.parse_error:
        raise AnalysisParseError(
            f"Cannot ingest transactions from an unparsed analysis result: {result.parse_error}",
            details={"document_id": document.id},
        )

    report = IngestReport(statement_id=document.id)
    company = find_company_by_slug(document.company, db_path)
    company_id = company.id if company else None
    if company_id is None:
        logger.warning(
            "No company found for slug %s; transactions for %s will have no company",
            document.company, document.id,
        )

    with get_db(db_path) as conn:
        reconciled = Counter(
            (r["txn_date"], r["description"], round(r["amount"], 2), r["direction"])
            for r in conn.execute(
                """SELECT txn_date, description, amount, direction FROM transactions
                   WHERE statement_id=? AND is_reconciled=1""",
                (document.id,),
            ).fetchall()
        )
        report.replaced = conn.execute(
            "DELETE FROM transactions WHERE statement_id=? AND is_reconciled=0", (document.id,)
        ).rowcount

        for index, item in enumerate(result.transactions):
            try:
                txn = build_transaction(index, item, document, company_id)
            except Exception as e:
                message = e.message if isinstance(e, ReconciliationItemError) else f"Line item {index}: {e}"
                logger.warning("Skipping line item %d of %s: %s", index, document.id, message)
                report.errors.append(ItemError(index=index, message=message))
                continue

            sig = _signature(txn)
            if reconciled[sig] > 0:
                reconciled[sig] -= 1
                report.kept_reconciled += 1
                continue

            conn.execute(
                """INSERT INTO transactions
                   (id, statement_id, company_id, txn_date, description, vendor, amount,
                    direction, check_no, balance, category_id, subcategory_id, confidence,
                    is_reconciled, tax_deductible, created_at, updated_at)
                   VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,0,1,?,?)""",
                (txn.id, txn.statement_id, txn.company_id, txn.txn_date.isoformat(),
                 txn.description, txn.vendor, txn.amount, txn.direction.value, txn.check_no,
                 txn.balance, txn.category_id, txn.subcategory_id, txn.confidence,
                 txn.created_at, txn.updated_at),
            )
            report.transactions.append(txn)

    logger.info(
        "Ingested %d transactions for %s (%d item errors, %d replaced, %d kept reconciled)",
        len(report.transactions), document.id, len(report.errors), report.replaced, report.kept_reconciled,
    )
    return report


def get_transaction(txn_id: str, db_path: str | None = None) -> Transaction:
    with get_db(db_path) as conn:
        row = conn.execute("SELECT * FROM transactions WHERE id=?", (txn_id,)).fetchone()
    if row is None:
        raise TransactionNotFoundError(txn_id)
    return _row_to_transaction(row)


def _filters(
    statement_id: str | None,
    company_id: str | None,
    direction: Direction | str | None,
    is_reconciled: bool | None,
) -> tuple[str, list]:
    clause = " WHERE 1=1"
    params: list = []
    if statement_id:
        clause += " AND statement_id=?"
        params.append(statement_id)
    if company_id:
        clause += " AND company_id=?"
        params.append(company_id)
    if direction:
        clause += " AND direction=?"
        params.append(Direction(direction).value)
    if is_reconciled is not None:
        clause += " AND is_reconciled=?"
        params.append(int(is_reconciled))
    return clause, params


def list_transactions(
    statement_id: str | None = None,
    company_id: str | None = None,
    direction: Direction | str | None = None,
    is_reconciled: bool | None = None,
    limit: int = 50,
    offset: int = 0,
    db_path: str | None = None,
) -> list[Transaction]:
    clause, params = _filters(statement_id, company_id, direction, is_reconciled)
    with get_db(db_path) as conn:
        rows = conn.execute(
            f"SELECT * FROM transactions{clause} ORDER BY txn_date DESC, created_at DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ).fetchall()
    return [_row_to_transaction(r) for r in rows]


def summarize_transactions(
    statement_id: str | None = None,
    company_id: str | None = None,
    db_path: str | None = None,
) -> TransactionSummary:
    clause, params = _filters(statement_id, company_id, None, None)
    with get_db(db_path) as conn:
        rows = conn.execute(
            f"SELECT direction, SUM(amount) AS total, COUNT(*) AS n FROM transactions{clause} GROUP BY direction",
            params,
        ).fetchall()
    by_direction = {r["direction"]: r for r in rows}
    debit = by_direction.get("debit")
    credit = by_direction.get("credit")
    total_debits = debit["total"] if debit else 0.0
    total_credits = credit["total"] if credit else 0.0
    return TransactionSummary(
        total_debits=total_debits,
        total_credits=total_credits,
        debit_count=debit["n"] if debit else 0,
        credit_count=credit["n"] if credit else 0,
        net_amount=total_credits - total_debits,
    )


def reconcile_transaction(
    txn_id: str,
    category: str,
    subcategory: str | None = None,
    actor: str | None = None,
    notes: str | None = None,
    db_path: str | None = None,
) -> Transaction:
    """
    Confirm a transaction's category. Overwrites any earlier automatic or
    manual assignment; the latest reconciliation wins.
    """
    if not actor:
        raise ValidationError("Reconciliation requires an actor")
    get_transaction(txn_id, db_path)
    cat, sub = resolve_assignment(category, subcategory, db_path)

    now = utcnow()
    with get_db(db_path) as conn:
        conn.execute(
            """UPDATE transactions
               SET category_id=?, subcategory_id=?, confidence=?, is_reconciled=1,
                   reconciled_at=?, reconciled_by=?, notes=COALESCE(?, notes), updated_at=?
               WHERE id=?""",
            (cat.id, sub.id if sub else None, MANUAL_CONFIDENCE, now, actor, notes, now, txn_id),
        )
    logger.info("Transaction %s reconciled as %s/%s by %s", txn_id, cat.name, sub.name if sub else "-", actor)
    return get_transaction(txn_id, db_path)


def reconcile_confident(
    statement_id: str,
    min_confidence: float,
    actor: str,
    db_path: str | None = None,
) -> list[Transaction]:
    """Reconcile every open transaction of a statement whose automatic category is confident enough."""
    if not actor:
        raise ValidationError("Reconciliation requires an actor")
    if not 0 <= min_confidence <= 1:
        raise ValidationError("min_confidence must be between 0 and 1")

    now = utcnow()
    with get_db(db_path) as conn:
        ids = [
            r["id"] for r in conn.execute(
                """SELECT id FROM transactions
                   WHERE statement_id=? AND is_reconciled=0 AND confidence >= ?""",
                (statement_id, min_confidence),
            ).fetchall()
        ]
        for txn_id in ids:
            conn.execute(
                """UPDATE transactions
                   SET is_reconciled=1, reconciled_at=?, reconciled_by=?, updated_at=?
                   WHERE id=?""",
                (now, actor, now, txn_id),
            )
    logger.info("Auto-reconciled %d transactions of %s at confidence >= %.2f", len(ids), statement_id, min_confidence)
    return [get_transaction(i, db_path) for i in ids]
