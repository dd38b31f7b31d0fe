"""OCR batch and review item storage."""

from __future__ import annotations

import json
import sqlite3
import uuid
from pathlib import Path

from ..models import BATCH_UPLOADED
from .schema import ensure_schema


class BatchDB:
    """Manages the ocr_batch and ocr_item tables."""

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

    # -- batches ------------------------------------------------------------

    def create_batch(self, uploaded_by: str | None = None, *, status: str = BATCH_UPLOADED) -> str:
        """Insert a new batch and return its ID."""
        conn = self._get_conn()
        batch_id = str(uuid.uuid4())
        conn.execute(
            "INSERT INTO ocr_batch (id, status, uploaded_by) VALUES (?, ?, ?)",
            (batch_id, status, uploaded_by),
        )
        conn.commit()
        return batch_id

    def get_batch(self, batch_id: str) -> dict | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM ocr_batch WHERE id = ?", (batch_id,)
        ).fetchone()
        return _decode_meta(row) if row else None

    def set_status(
        self, batch_id: str, status: str, *, meta: dict | None = None
    ) -> int:
        """Update a batch's status and metadata.

        Returns:
            Number of rows updated (0 if the batch doesn't exist).
        """
        conn = self._get_conn()
        cur = conn.execute(
            "UPDATE ocr_batch SET status = ?, meta = ? WHERE id = ?",
            (status, _encode(meta), batch_id),
        )
        conn.commit()
        return cur.rowcount

    def list_batches(self, limit: int = 20) -> list[dict]:
        """Return the most recent batches, newest first."""
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM ocr_batch ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [_decode_meta(r) for r in rows]

    # -- review items -------------------------------------------------------

    def add_item(
        self,
        batch_id: str,
        *,
        raw_text: str,
        confidence: float,
        matched_product_id: str | None = None,
        meta: dict | None = None,
    ) -> str:
        """Insert an OCR review item and return its ID."""
        conn = self._get_conn()
        item_id = str(uuid.uuid4())
        with conn:
            conn.execute(
                """INSERT INTO ocr_item
                   (id, batch_id, raw_text, confidence, matched_product_id, meta)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (item_id, batch_id, raw_text, confidence, matched_product_id, _encode(meta)),
            )
        return item_id

    def list_items(
        self,
        *,
        batch_id: str | None = None,
        pending_only: bool = False,
        limit: int = 50,
    ) -> list[dict]:
        """Return review items, newest first, with the matched product's name.

        ``pending_only`` keeps items that have no matched product yet.
        """
        clauses: list[str] = []
        params: list = []
        if batch_id is not None:
            clauses.append("i.batch_id = ?")
            params.append(batch_id)
        if pending_only:
            clauses.append("i.matched_product_id IS NULL")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        conn = self._get_conn()
        rows = conn.execute(
            f"""SELECT i.*, pm.name AS product_name, pm.brand AS product_brand,
                       b.status AS batch_status, b.created_at AS batch_created_at
                FROM ocr_item i
                JOIN ocr_batch b ON b.id = i.batch_id
                LEFT JOIN product_master pm ON pm.id = i.matched_product_id
                {where}
                ORDER BY i.rowid DESC
                LIMIT ?""",
            params,
        ).fetchall()
        return [_decode_meta(r) for r in rows]

    def assign_product(self, item_id: str, product_id: str) -> int:
        """Resolve a review item to a catalog product by hand.

        Returns:
            Number of rows updated (0 if the item doesn't exist).
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                "UPDATE ocr_item SET matched_product_id = ? WHERE id = ?",
                (product_id, item_id),
            )
        return cur.rowcount


def _encode(meta: dict | None) -> str | None:
    return json.dumps(meta, ensure_ascii=False) if meta is not None else None


def _decode_meta(row: sqlite3.Row) -> dict:
    data = dict(row)
    if data.get("meta") is not None:
        data["meta"] = json.loads(data["meta"])
    return data
