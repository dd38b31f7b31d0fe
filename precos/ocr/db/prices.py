"""Append-only price history storage."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from .schema import ensure_schema


class PriceDB:
    """Manages the price table.

    Rows are never updated: each observation is a new row and readers pick
    the most recent one per product, supermarket and price type.
    """

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

    def add_price(
        self,
        product_id: str,
        supermarket_id: str,
        price: float,
        *,
        price_type: str = "retail",
        min_quantity: int = 1,
        unit_size: str | None = None,
        source: str = "manual",
        batch_id: str | None = None,
        captured_at: str | None = None,
    ) -> str:
        """Insert one price observation and return its ID."""
        conn = self._get_conn()
        price_id = str(uuid.uuid4())
        if captured_at is None:
            captured_at = datetime.now(timezone.utc).isoformat()
        with conn:
            conn.execute(
                """INSERT INTO price
                   (id, product_id, supermarket_id, price, price_type, min_quantity,
                    unit_size, source, batch_id, captured_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    price_id,
                    product_id,
                    supermarket_id,
                    price,
                    price_type,
                    min_quantity,
                    unit_size,
                    source,
                    batch_id,
                    captured_at,
                ),
            )
        return price_id

    def list_prices(
        self,
        *,
        product_id: str | None = None,
        supermarket_id: str | None = None,
        batch_id: str | None = None,
    ) -> list[dict]:
        """Return observations matching the filters, newest first."""
        clauses: list[str] = []
        params: list[str] = []
        for column, value in (
            ("product_id", product_id),
            ("supermarket_id", supermarket_id),
            ("batch_id", batch_id),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._get_conn()
        rows = conn.execute(
            f"SELECT * FROM price {where} ORDER BY captured_at DESC, rowid DESC",
            params,
        ).fetchall()
        return [dict(r) for r in rows]

    def latest_prices(self, supermarket_id: str) -> list[dict]:
        """Return the most recent observation per product and price type."""
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT p.*, pm.name AS product_name, pm.brand AS product_brand
               FROM price p
               JOIN product_master pm ON pm.id = p.product_id
               WHERE p.supermarket_id = ?
                 AND p.rowid = (
                     SELECT p2.rowid FROM price p2
                     WHERE p2.product_id = p.product_id
                       AND p2.supermarket_id = p.supermarket_id
                       AND p2.price_type = p.price_type
                     ORDER BY p2.captured_at DESC, p2.rowid DESC
                     LIMIT 1
                 )
               ORDER BY pm.name, p.price_type""",
            (supermarket_id,),
        ).fetchall()
        return [dict(r) for r in rows]
