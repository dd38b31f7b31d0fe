"""SQLite database module for the catalog, price history and OCR batches."""

from .batches import BatchDB
from .catalog import CatalogDB
from .prices import PriceDB
from .schema import ensure_schema

__all__ = [
    "BatchDB",
    "CatalogDB",
    "PriceDB",
    "ensure_schema",
]
