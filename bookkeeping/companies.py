"""
Client companies — CRUD on the companies table.
"""

import json
import logging
import re
import sqlite3
import uuid
from typing import Optional

from bookkeeping.database import get_db
from bookkeeping.exceptions import CompanyNotFoundError, DuplicateCompanyError, ValidationError
from bookkeeping.models import Address, Company, utcnow

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:_[a-z0-9]+)*$")


def slugify(name: str) -> str:
    """``"Murphy Web Services"`` → ``"murphy_web_services"``."""
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def _row_to_company(row: sqlite3.Row) -> Company:
    data = dict(row)
    data["address"] = Address(**json.loads(data.pop("address_json") or "{}"))
    return Company(**data)


def create_company(
    name: str,
    legal_name: str | None = None,
    slug: str | None = None,
    tax_id: str | None = None,
    currency: str = "PHP",
    fiscal_year_end: int = 12,
    address: Address | dict | None = None,
    phone: str | None = None,
    email: str | None = None,
    description: str | None = None,
    db_path: str | None = None,
) -> Company:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Company name is required")
    slug = slug or slugify(name)
    if not _SLUG_RE.match(slug):
        raise ValidationError(f"Invalid company slug '{slug}'")
    if not 1 <= fiscal_year_end <= 12:
        raise ValidationError("fiscal_year_end must be a month between 1 and 12")
    if isinstance(address, dict):
        address = Address(**address)

    now = utcnow()
    company = Company(
        id=str(uuid.uuid4()),
        name=name,
        legal_name=legal_name or name,
        slug=slug,
        tax_id=tax_id,
        currency=currency,
        fiscal_year_end=fiscal_year_end,
        address=address or Address(),
        phone=phone,
        email=email,
        description=description,
        created_at=now,
        updated_at=now,
    )
    with get_db(db_path) as conn:
        for field, value in (("name", company.name), ("slug", company.slug)):
            if conn.execute(f"SELECT 1 FROM companies WHERE {field}=?", (value,)).fetchone():
                raise DuplicateCompanyError(field, value)
        conn.execute(
            """INSERT INTO companies
               (id, name, legal_name, slug, tax_id, currency, fiscal_year_end, status,
                address_json, phone, email, description, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
            (company.id, company.name, company.legal_name, company.slug, company.tax_id,
             company.currency, company.fiscal_year_end, company.status,
             company.address.model_dump_json(), company.phone, company.email,
             company.description, now, now),
        )
    logger.info("Created company %s (%s)", company.name, company.slug)
    return company


def find_company_by_slug(slug: str, db_path: str | None = None) -> Optional[Company]:
    with get_db(db_path) as conn:
        row = conn.execute("SELECT * FROM companies WHERE slug=?", (slug,)).fetchone()
    return _row_to_company(row) if row else None


def get_company(id_or_slug: str, db_path: str | None = None) -> Company:
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM companies WHERE id=? OR slug=?", (id_or_slug, id_or_slug)
        ).fetchone()
    if row is None:
        raise CompanyNotFoundError(id_or_slug)
    return _row_to_company(row)


def list_companies(status: str | None = None, db_path: str | None = None) -> list[Company]:
    query = "SELECT * FROM companies"
    params: list = []
    if status:
        query += " WHERE status=?"
        params.append(status)
    query += " ORDER BY name"
    with get_db(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_company(r) for r in rows]


def set_company_status(id_or_slug: str, status: str, db_path: str | None = None) -> Company:
    if status not in ("active", "inactive"):
        raise ValidationError(f"Invalid company status '{status}'")
    company = get_company(id_or_slug, db_path)
    with get_db(db_path) as conn:
        conn.execute(
            "UPDATE companies SET status=?, updated_at=? WHERE id=?",
            (status, utcnow(), company.id),
        )
    return get_company(company.id, db_path)
