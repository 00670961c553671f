"""
Domain: Catalog products.

Invariants:
- price is a non-negative Decimal.
- stock is a non-negative integer. Stock is never mutated on this entity;
  the storage layer owns the counter and changes it atomically.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from .compatibility import CompatibilityEntry, MotorcycleSelector, is_compatible
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class Product:
    """Immutable snapshot of a catalog product as read from storage."""

    product_id: str
    name: str
    price: Decimal
    stock: int

    sku: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    compatible_with: Tuple[CompatibilityEntry, ...] = ()
    # Bumped on every compatibility write; guards concurrent rule fan-outs.
    compatibility_version: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("name must be non-empty")
        if self.price < 0:
            raise ValueError("price must be >= 0")
        if self.stock < 0:
            raise ValueError("stock must be >= 0")
        if self.compatibility_version < 0:
            raise ValueError("compatibility_version must be >= 0")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    def fits(self, selector: MotorcycleSelector, *, universal: bool = False) -> bool:
        return is_compatible(self.compatible_with, selector, universal=universal)
