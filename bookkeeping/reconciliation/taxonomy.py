"""
Default category taxonomy and lookups.

Top-level categories carry an income/expense type; subcategories hang off a
single parent and inherit its type.
"""

import sqlite3
import uuid
from typing import Optional

from bookkeeping.database import get_db
from bookkeeping.exceptions import CategoryNotFoundError, ValidationError
from bookkeeping.models import Category, Direction

UNCATEGORIZED_INCOME = "Uncategorized Income"
UNCATEGORIZED_EXPENSE = "Uncategorized Expense"

# name → subcategories
INCOME_TAXONOMY: dict[str, list[str]] = {
    "Sales": ["Product Sales", "Online Sales"],
    "Services": ["Consulting", "Web Services"],
    "Interest Income": [],
    "Other Income": ["Refunds", "Transfers In"],
}

EXPENSE_TAXONOMY: dict[str, list[str]] = {
    "Payroll": ["Salaries", "Benefits", "Government Contributions"],
    "Rent": [],
    "Utilities": ["Electricity", "Water", "Internet", "Telephone"],
    "Supplies": ["Office Supplies", "Food & Beverage"],
    "Marketing": ["Advertising", "Subscriptions"],
    "Insurance": [],
    "Professional Services": ["Legal", "Accounting"],
    "Bank Fees": [],
    "Taxes & Licenses": [],
    "Other Expenses": ["Travel", "Fuel", "Transfers Out"],
}

INCOME_CATEGORIES = list(INCOME_TAXONOMY)
EXPENSE_CATEGORIES = list(EXPENSE_TAXONOMY)

_NAMESPACE = uuid.UUID("6f1c2e0a-3b7d-4d8e-9a51-2c0f4b6a9e13")


def category_id(name: str) -> str:
    """Stable id for a seeded category name."""
    return str(uuid.uuid5(_NAMESPACE, name.lower()))


def seed_categories(conn: sqlite3.Connection):
    """Insert the default taxonomy; existing rows are left alone."""
    groups = [("income", INCOME_TAXONOMY, UNCATEGORIZED_INCOME),
              ("expense", EXPENSE_TAXONOMY, UNCATEGORIZED_EXPENSE)]
    for ctype, taxonomy, fallback in groups:
        for name, subs in {**taxonomy, fallback: []}.items():
            parent = category_id(name)
            conn.execute(
                "INSERT OR IGNORE INTO categories (id, name, type, parent_id) VALUES (?,?,?,NULL)",
                (parent, name, ctype),
            )
            for sub in subs:
                conn.execute(
                    "INSERT OR IGNORE INTO categories (id, name, type, parent_id) VALUES (?,?,?,?)",
                    (category_id(sub), sub, ctype, parent),
                )


def _row_to_category(row) -> Category:
    data = dict(row)
    data["is_system"] = bool(data["is_system"])
    return Category(**data)


def find_category(name_or_id: str, db_path: str | None = None) -> Optional[Category]:
    """Look a category up by id or case-insensitive name."""
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM categories WHERE id=? OR lower(name)=lower(?)",
            (name_or_id, name_or_id.strip()),
        ).fetchone()
    return _row_to_category(row) if row else None


def list_categories(db_path: str | None = None) -> list[Category]:
    with get_db(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM categories ORDER BY type, parent_id IS NOT NULL, name"
        ).fetchall()
    return [_row_to_category(r) for r in rows]


def resolve_assignment(
    category: str,
    subcategory: str | None = None,
    db_path: str | None = None,
) -> tuple[Category, Optional[Category]]:
    """
    Resolve a (category, subcategory) pair and check that the subcategory
    belongs under the category.
    """
    cat = find_category(category, db_path)
    if cat is None:
        raise CategoryNotFoundError(category)
    if cat.parent_id is not None:
        raise ValidationError(f"'{cat.name}' is a subcategory, not a top-level category")
    if not subcategory:
        return cat, None

    sub = find_category(subcategory, db_path)
    if sub is None:
        raise CategoryNotFoundError(subcategory)
    if sub.parent_id != cat.id:
        raise ValidationError(
            f"Subcategory '{sub.name}' does not belong to category '{cat.name}'",
            details={"category": cat.name, "subcategory": sub.name},
        )
    return cat, sub


def fallback_category(direction: Direction) -> str:
    return UNCATEGORIZED_INCOME if direction == Direction.CREDIT else UNCATEGORIZED_EXPENSE
