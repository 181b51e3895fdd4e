"""Price query service: the read side of the quote cache.

Every call re-reads the store: the latest persisted quote already is the
cache, and the service never triggers an upstream fetch.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Protocol

from bullion_sentinel.core.exceptions import (
    PriceUnavailable,
    QuoteNotFound,
    QuoteValidationError,
)

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


class LatestPriceReader(Protocol):
    """The single store operation the service depends on."""

    async def latest_sell_price(self, product_id: int) -> Decimal: ...


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.916 as 0.916 instead of its binary expansion
    return Decimal(str(value))


def compute_price(
    sell_price: Decimal,
    gram: float | Decimal,
    factor: float | Decimal,
) -> Decimal:
    """gram * sell_price * factor, rounded half-even to two decimals."""
    amount = _to_decimal(gram) * sell_price * _to_decimal(factor)
    return amount.quantize(_CENTS, rounding=ROUND_HALF_EVEN)


class PriceQueryService:
    """Computes prices from the most recent known sell rate of a product."""

    def __init__(self, store: LatestPriceReader) -> None:
        self._store = store

    async def quote(
        self,
        product_id: int,
        gram: float | Decimal,
        factor: float | Decimal,
    ) -> Decimal:
        """Price ``gram`` grams of ``product_id`` at purity ``factor``.

        Raises:
            QuoteValidationError: gram or factor is not strictly positive, or
                the resulting price is too large to represent.
            PriceUnavailable: No quote has been stored for the product yet.
        """
        for field, value in (("gram", gram), ("factor", factor)):
            if not _to_decimal(value).is_finite() or value <= 0:
                raise QuoteValidationError(
                    f"{field} must be a positive number, got {value}",
                    context={"field": field, "value": value},
                )

        try:
            sell_price = await self._store.latest_sell_price(product_id)
        except QuoteNotFound as e:
            logger.debug("No quote stored for product %d", product_id)
            raise PriceUnavailable(
                "price not found",
                context={"product_id": product_id},
            ) from e

        try:
            return compute_price(sell_price, gram, factor)
        except InvalidOperation as e:
            raise QuoteValidationError(
                f"price for gram={gram} factor={factor} is too large to represent",
                context={"field": "gram", "value": gram},
            ) from e
