"""Database schema definitions and migration helpers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA_VERSION = 1

_DDL = """
CREATE TABLE IF NOT EXISTS supermarket (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    city TEXT,
    address TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS product_master (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    brand TEXT,
    ean TEXT,
    category TEXT,
    unit TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Not UNIQUE: concurrent batches may both create the same EAN.
CREATE INDEX IF NOT EXISTS idx_product_ean ON product_master(ean);

CREATE TABLE IF NOT EXISTS ocr_batch (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'uploaded',
    uploaded_by TEXT,
    meta TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS ocr_item (
    id TEXT PRIMARY KEY,
    batch_id TEXT NOT NULL REFERENCES ocr_batch(id),
    raw_text TEXT,
    confidence REAL,
    matched_product_id TEXT REFERENCES product_master(id),
    meta TEXT
);

CREATE INDEX IF NOT EXISTS idx_ocr_item_batch ON ocr_item(batch_id);

CREATE TABLE IF NOT EXISTS price (
    id TEXT PRIMARY KEY,
    product_id TEXT NOT NULL REFERENCES product_master(id),
    supermarket_id TEXT NOT NULL REFERENCES supermarket(id),
    price REAL NOT NULL,
    price_type TEXT NOT NULL DEFAULT 'retail',
    min_quantity INTEGER NOT NULL DEFAULT 1,
    unit_size TEXT,
    source TEXT NOT NULL DEFAULT 'manual',
    batch_id TEXT REFERENCES ocr_batch(id),
    captured_at TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_price_lookup
    ON price(product_id, supermarket_id, price_type, captured_at);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    Also registers a ``casefold()`` SQL function, since SQLite's ``lower()``
    only folds ASCII and product names are full of accents.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open sqlite3.Connection with the schema applied.
    """
    db_path = Path(db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # FastAPI runs the plain-def API routes in its thread pool.
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.create_function("casefold", 1, _casefold, deterministic=True)

    # Check current schema version
    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < _SCHEMA_VERSION:
        conn.executescript(_DDL)
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        conn.commit()

    return conn
