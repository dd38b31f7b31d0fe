"""Mapping of extracted candidate items onto the product catalog."""

from __future__ import annotations

import logging
import re

from .db import CatalogDB
from .models import CandidateItem, Resolution

logger = logging.getLogger(__name__)

_EAN_LENGTHS = (8, 13)


def valid_ean(ean: str | None) -> str | None:
    """Return *ean* if it is an EAN-8 or EAN-13 digit string, else None."""
    if ean and re.fullmatch(r"[0-9]+", ean) and len(ean) in _EAN_LENGTHS:
        return ean
    return None


def normalize(text: str | None) -> str:
    """Trim and case-fold a name or brand for matching."""
    return (text or "").strip().casefold()


class ProductReconciler:
    """Resolves candidate items to catalog products.

    Resolution order, first match wins:

    1. Exact EAN match (valid EAN-8/13 only). Backfills the product's unit
       if it has none.
    2. Case-folded substring match on the product name, preferring a product
       whose brand contains the candidate's brand. Backfills EAN and unit in
       one update if the product has no EAN.
    3. A new product, only if the name is non-empty and the confidence
       reaches ``create_min_confidence``.

    Anything else stays unresolved for manual review. Database errors are
    not caught here.
    """

    def __init__(self, catalog: CatalogDB, create_min_confidence: float = 0.7) -> None:
        self._catalog = catalog
        self._create_min_confidence = create_min_confidence

    def resolve(self, item: CandidateItem) -> Resolution:
        ean = valid_ean(item.ean)

        if ean:
            product = self._catalog.find_by_ean(ean)
            if product is not None:
                if not product["unit"] and item.unit:
                    self._catalog.update_product(product["id"], unit=item.unit)
                    logger.debug("Unidade preenchida para %s: %s", product["id"], item.unit)
                return Resolution(product_id=product["id"], matched_by="ean")

        name = normalize(item.name)
        if name:
            matches = self._catalog.search_by_name(name)
            if matches:
                product = self._pick(matches, normalize(item.brand))
                if not product["ean"] and ean:
                    self._catalog.update_product(
                        product["id"], ean=ean, unit=item.unit or product["unit"]
                    )
                    logger.debug("EAN preenchido para %s: %s", product["id"], ean)
                return Resolution(product_id=product["id"], matched_by="name")

        if name and item.confidence >= self._create_min_confidence:
            product_id = self._catalog.create_product(
                item.name.strip(),
                brand=item.brand,
                ean=ean,
                unit=item.unit,
            )
            logger.info("Produto criado: %s (%s)", item.name, product_id)
            return Resolution(product_id=product_id, matched_by="created", created=True)

        return Resolution()

    @staticmethod
    def _pick(matches: list[dict], brand: str) -> dict:
        if brand:
            for product in matches:
                if brand in normalize(product["brand"]):
                    return product
        return matches[0]
