"""Supermarket and product catalog storage."""

from __future__ import annotations

import sqlite3
import uuid
from pathlib import Path

from .schema import ensure_schema

# Columns the pipeline is allowed to backfill on an existing product.
_UPDATABLE_COLUMNS = {"name", "brand", "ean", "category", "unit"}


class CatalogDB:
    """Manages the supermarket and product_master tables."""

    def __init__(self, db_path: str | Path = "~/.config/precos/precos.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -- supermarkets -------------------------------------------------------

    def add_supermarket(
        self, name: str, *, city: str | None = None, address: str | None = None
    ) -> str:
        """Register a supermarket and return its ID."""
        conn = self._get_conn()
        supermarket_id = str(uuid.uuid4())
        conn.execute(
            "INSERT INTO supermarket (id, name, city, address) VALUES (?, ?, ?, ?)",
            (supermarket_id, name, city, address),
        )
        conn.commit()
        return supermarket_id

    def get_supermarket(self, supermarket_id: str) -> dict | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM supermarket WHERE id = ?", (supermarket_id,)
        ).fetchone()
        return dict(row) if row else None

    def list_supermarkets(self) -> list[dict]:
        conn = self._get_conn()
        rows = conn.execute("SELECT * FROM supermarket ORDER BY name").fetchall()
        return [dict(r) for r in rows]

    # -- products -----------------------------------------------------------

    def get_product(self, product_id: str) -> dict | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM product_master WHERE id = ?", (product_id,)
        ).fetchone()
        return dict(row) if row else None

    def find_by_ean(self, ean: str) -> dict | None:
        """Return the oldest product carrying exactly this EAN."""
        conn = self._get_conn()
        row = conn.execute(
            """SELECT * FROM product_master
               WHERE ean = ?
               ORDER BY created_at, rowid
               LIMIT 1""",
            (ean,),
        ).fetchone()
        return dict(row) if row else None

    def search_by_name(self, fragment: str) -> list[dict]:
        """Return products whose case-folded name contains *fragment*.

        *fragment* is expected to be already case-folded. Results are in a
        stable order (creation time, then insertion order).
        """
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT * FROM product_master
               WHERE instr(casefold(name), ?) > 0
               ORDER BY created_at, rowid""",
            (fragment,),
        ).fetchall()
        return [dict(r) for r in rows]

    def create_product(
        self,
        name: str,
        *,
        brand: str | None = None,
        ean: str | None = None,
        category: str | None = None,
        unit: str | None = None,
    ) -> str:
        """Insert a catalog product and return its ID."""
        conn = self._get_conn()
        product_id = str(uuid.uuid4())
        conn.execute(
            """INSERT INTO product_master (id, name, brand, ean, category, unit)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (product_id, name, brand, ean, category, unit),
        )
        conn.commit()
        return product_id

    def update_product(self, product_id: str, **fields: str | None) -> None:
        """Update the given columns of a product in a single statement."""
        if not fields:
            return
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Colunas inválidas para produto: {sorted(unknown)}")

        columns = sorted(fields)
        assignments = ", ".join(f"{col} = ?" for col in columns)
        conn = self._get_conn()
        conn.execute(
            f"UPDATE product_master SET {assignments} WHERE id = ?",
            (*[fields[col] for col in columns], product_id),
        )
        conn.commit()
