"""
SQLite database initialisation and helpers.
"""

import os
import sqlite3
from contextlib import contextmanager

from bookkeeping import config

_SCHEMA = """
CREATE TABLE IF NOT EXISTS companies (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL UNIQUE,
    legal_name      TEXT NOT NULL,
    slug            TEXT NOT NULL UNIQUE,
    tax_id          TEXT,
    currency        TEXT NOT NULL DEFAULT 'PHP',
    fiscal_year_end INTEGER NOT NULL DEFAULT 12 CHECK (fiscal_year_end BETWEEN 1 AND 12),
    status          TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'inactive')),
    address_json    TEXT NOT NULL DEFAULT '{}',
    phone           TEXT,
    email           TEXT,
    description     TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id                TEXT PRIMARY KEY,
    company           TEXT NOT NULL,
    month             INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    year              INTEGER NOT NULL,
    document_type     TEXT NOT NULL DEFAULT 'bank_statement',
    filename          TEXT NOT NULL,
    content_type      TEXT NOT NULL DEFAULT 'application/octet-stream',
    size_bytes        INTEGER NOT NULL DEFAULT 0,
    storage_type      TEXT NOT NULL CHECK (storage_type IN ('internal', 'external')),
    gridfs_file_id    TEXT,
    supabase_path     TEXT,
    processing_status TEXT NOT NULL DEFAULT 'uploaded',
    error_message     TEXT,
    analysis_result   TEXT,
    uploaded_by       TEXT NOT NULL,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    CHECK (
        (storage_type = 'internal' AND gridfs_file_id IS NOT NULL AND supabase_path IS NULL)
     OR (storage_type = 'external' AND supabase_path IS NOT NULL AND gridfs_file_id IS NULL)
    )
);

CREATE TABLE IF NOT EXISTS categories (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL UNIQUE,
    type        TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    parent_id   TEXT REFERENCES categories(id) ON DELETE CASCADE,
    is_system   INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS transactions (
    id              TEXT PRIMARY KEY,
    statement_id    TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    company_id      TEXT REFERENCES companies(id),
    txn_date        TEXT NOT NULL,
    description     TEXT NOT NULL,
    vendor          TEXT,
    amount          REAL NOT NULL CHECK (amount >= 0),
    direction       TEXT NOT NULL CHECK (direction IN ('debit', 'credit')),
    check_no        TEXT,
    balance         REAL,
    category_id     TEXT REFERENCES categories(id),
    subcategory_id  TEXT REFERENCES categories(id),
    confidence      REAL CHECK (confidence IS NULL OR (confidence >= 0 AND confidence <= 1)),
    is_reconciled   INTEGER NOT NULL DEFAULT 0,
    reconciled_at   TEXT,
    reconciled_by   TEXT,
    tax_deductible  INTEGER NOT NULL DEFAULT 1,
    notes           TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS blob_files (
    id            TEXT PRIMARY KEY,
    filename      TEXT NOT NULL,
    content_type  TEXT NOT NULL DEFAULT 'application/octet-stream',
    length        INTEGER NOT NULL,
    chunk_size    INTEGER NOT NULL,
    metadata_json TEXT NOT NULL DEFAULT '{}',
    upload_date   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS blob_chunks (
    files_id    TEXT NOT NULL REFERENCES blob_files(id) ON DELETE CASCADE,
    n           INTEGER NOT NULL,
    data        BLOB NOT NULL,
    PRIMARY KEY (files_id, n)
);

CREATE INDEX IF NOT EXISTS idx_documents_period ON documents(company, year DESC, month DESC);
CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(processing_status);
CREATE INDEX IF NOT EXISTS idx_txn_statement ON transactions(statement_id);
CREATE INDEX IF NOT EXISTS idx_txn_company_date ON transactions(company_id, txn_date DESC);
CREATE INDEX IF NOT EXISTS idx_txn_vendor ON transactions(vendor, company_id);
"""


def _ensure_dir(path: str):
    db_dir = os.path.dirname(path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)


def init_db(db_path: str | None = None):
    """Create tables if they don't exist yet and seed the category taxonomy."""
    from bookkeeping.reconciliation.taxonomy import seed_categories

    path = db_path or config.DATABASE_PATH
    _ensure_dir(path)
    conn = sqlite3.connect(path)
    try:
        conn.executescript(_SCHEMA)
        seed_categories(conn)
        conn.commit()
    finally:
        conn.close()


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    path = db_path or config.DATABASE_PATH
    _ensure_dir(path)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db(db_path: str | None = None):
    """Context manager that yields a connection and auto-commits/rollbacks."""
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
