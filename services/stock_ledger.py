"""
Stock ledger: the authoritative per-product available quantity.

Exposes exactly two mutations:
- reserve(): indivisible check-and-decrement, succeeds only if enough stock
  remains. It never waits for stock to become available.
- release(): unconditional increment, used for compensation and restocking.

available() is for display only; never decide a decrement from it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List

from domain.product import Product
from repositories.protocols import ProductRepository, StockReservationStatus

logger = logging.getLogger(__name__)


class ReservationOutcome(str, Enum):
    RESERVED = "reserved"
    INSUFFICIENT = "insufficient"
    NOT_FOUND = "not_found"


class StockLedger:
    """Atomic stock operations over a product repository."""

    def __init__(self, product_repository: ProductRepository):
        self._products = product_repository

    def reserve(self, product_id: str, quantity: int) -> ReservationOutcome:
        """
        Atomically take quantity units of product_id.

        Raises:
            ValueError: quantity is not a positive integer
            RuntimeError: storage failure
        """

        _require_positive_quantity(quantity)
        reservation = self._products.reserve_stock(product_id, quantity)

        if reservation.status is StockReservationStatus.RESERVED:
            logger.debug(
                "Reserved %d of %s (remaining %s)", quantity, product_id, reservation.remaining_stock
            )
            return ReservationOutcome.RESERVED

        if reservation.status is StockReservationStatus.NOT_FOUND:
            return ReservationOutcome.NOT_FOUND

        logger.info(
            "Insufficient stock for %s: requested %d, available %s",
            product_id,
            quantity,
            reservation.remaining_stock,
        )
        return ReservationOutcome.INSUFFICIENT

    def release(self, product_id: str, quantity: int) -> int:
        """Give quantity units back to product_id; returns the new stock."""

        _require_positive_quantity(quantity)
        new_stock = self._products.release_stock(product_id, quantity)
        logger.debug("Released %d of %s (now %d)", quantity, product_id, new_stock)
        return new_stock

    def available(self, product_id: str) -> int:
        """Current stock for display; 0 for unknown products."""

        stock = self._products.get_stock(product_id)
        return stock if stock is not None else 0

    def low_stock(self, threshold: int = 0) -> List[Product]:
        """Products with stock at or below threshold, lowest first."""

        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        return self._products.list_low_stock(threshold)


def _require_positive_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")


__all__ = ["ReservationOutcome", "StockLedger"]
