"""Recording of extracted prices into the price history."""

from __future__ import annotations

from .db import PriceDB
from .models import PRICE_RETAIL, PRICE_WHOLESALE, SOURCE_OCR, CandidateItem


class PriceRecorder:
    """Appends retail and wholesale observations for a resolved product.

    The two prices are independent: an item can yield a retail row, a
    wholesale row, both, or neither. Nothing is ever updated in place, so
    re-processing the same batch duplicates rows.
    """

    def __init__(self, prices: PriceDB) -> None:
        self._prices = prices

    def record(
        self,
        product_id: str,
        supermarket_id: str,
        batch_id: str,
        item: CandidateItem,
    ) -> list[str]:
        """Insert the item's price observations and return their IDs."""
        ids: list[str] = []

        if item.retail_price is not None and item.retail_price > 0:
            ids.append(
                self._prices.add_price(
                    product_id,
                    supermarket_id,
                    item.retail_price,
                    price_type=PRICE_RETAIL,
                    min_quantity=1,
                    unit_size=item.unit,
                    source=SOURCE_OCR,
                    batch_id=batch_id,
                )
            )

        if (
            item.wholesale_price is not None
            and item.wholesale_price > 0
            and item.min_wholesale_qty is not None
        ):
            ids.append(
                self._prices.add_price(
                    product_id,
                    supermarket_id,
                    item.wholesale_price,
                    price_type=PRICE_WHOLESALE,
                    min_quantity=item.min_wholesale_qty,
                    unit_size=item.unit,
                    source=SOURCE_OCR,
                    batch_id=batch_id,
                )
            )

        return ids
