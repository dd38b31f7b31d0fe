"""Data models shared by the OCR ingestion stages."""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any

# Batch lifecycle: uploaded → processing → done | error
BATCH_UPLOADED = "uploaded"
BATCH_PROCESSING = "processing"
BATCH_DONE = "done"
BATCH_ERROR = "error"

PRICE_RETAIL = "retail"
PRICE_WHOLESALE = "wholesale"

SOURCE_OCR = "ocr"

# Confidence assumed for a model item that does not report one.
DEFAULT_CONFIDENCE = 0.8


@dataclass
class CandidateItem:
    """A single product extracted from one image, before catalog resolution."""

    name: str | None = None
    brand: str | None = None
    ean: str | None = None
    unit: str | None = None          # Free-text unit size, e.g. "1kg"
    retail_price: float | None = None
    wholesale_price: float | None = None
    min_wholesale_qty: int | None = None
    confidence: float = DEFAULT_CONFIDENCE

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CandidateItem:
        """Build an item from one entry of the model's ``items`` array.

        Never raises: unusable values become ``None``.
        """
        retail = raw.get("retail_price")
        if retail is None:
            # First-generation prompts used a single "price" field.
            retail = raw.get("price")

        return cls(
            name=_text(raw.get("name")),
            brand=_text(raw.get("brand")),
            ean=_ean(raw.get("ean")),
            unit=_text(raw.get("unit") if raw.get("unit") is not None else raw.get("unit_size")),
            retail_price=_positive_price(retail),
            wholesale_price=_positive_price(raw.get("wholesale_price")),
            min_wholesale_qty=_positive_int(raw.get("min_wholesale_qty")),
            confidence=_confidence(raw.get("confidence")),
        )

    @property
    def raw_text(self) -> str:
        return f"{self.name or ''} {self.brand or ''}".strip()


@dataclass
class Resolution:
    """Outcome of reconciling a candidate item against the catalog."""

    product_id: str | None = None
    matched_by: str | None = None    # "ean", "name", "created" or None
    created: bool = False

    @property
    def resolved(self) -> bool:
        return self.product_id is not None


@dataclass
class ImageError:
    path: str
    error: str


@dataclass
class BatchResult:
    """Summary returned to the caller once a batch has been processed."""

    processed_count: int
    total_count: int
    errors: list[ImageError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": True,
            "processedCount": self.processed_count,
            "totalCount": self.total_count,
        }
        if self.errors:
            data["errors"] = [asdict(e) for e in self.errors]
        return data


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _ean(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    digits = re.sub(r"[\s-]", "", value)
    return digits if re.fullmatch(r"[0-9]+", digits) else None


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        # "R$ 24,90" → 24.90
        cleaned = re.sub(r"[^\d,.\-]", "", value)
        if "," in cleaned and "." not in cleaned:
            cleaned = cleaned.replace(",", ".")
        value = cleaned
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _positive_price(value: Any) -> float | None:
    number = _number(value)
    if number is None or number <= 0:
        return None
    return number


def _positive_int(value: Any) -> int | None:
    number = _number(value)
    if number is None or number < 1:
        return None
    return int(number)


def _confidence(value: Any) -> float:
    number = _number(value)
    if number is None:
        return DEFAULT_CONFIDENCE
    return min(max(number, 0.0), 1.0)
