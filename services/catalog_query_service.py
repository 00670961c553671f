"""
Catalog query service.

Builds the filtered, sorted product listings used by the storefront.
Category, brand, price, free text, stock and sort are pushed down to the
product repository; the motorcycle dimension is resolved first by the
compatibility resolver and then applied as an id restriction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from domain.compatibility import MotorcycleSelector
from domain.product import Product
from repositories.protocols import ProductQueryFilters, ProductRepository, ProductSort
from services.compatibility_service import CompatibilityResolver

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 24


@dataclass(frozen=True, slots=True)
class CatalogQuery:
    """
    Storefront listing query.

    All filters are optional; an empty query lists the whole catalog.
    """
    category: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    text: Optional[str] = None
    motorcycle: Optional[MotorcycleSelector] = None
    in_stock_only: bool = False
    sort: Optional[ProductSort] = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if self.offset < 0:
            raise ValueError("offset must be >= 0")
        if self.min_price is not None and self.min_price < 0:
            raise ValueError("min_price must be >= 0")
        if self.max_price is not None and self.max_price < 0:
            raise ValueError("max_price must be >= 0")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")


class CatalogQueryService:

    def __init__(self, product_repository: ProductRepository, compatibility_resolver: CompatibilityResolver):
        self._products = product_repository
        self._compatibility = compatibility_resolver

    def search(self, query: CatalogQuery) -> List[Product]:
        product_ids = None
        if query.motorcycle is not None:
            selector = query.motorcycle
            compatible = self._compatibility.products_compatible_with(
                selector.brand, selector.model, selector.year, category=query.category
            )
            if not compatible:
                logger.debug("No products fit %s", selector.describe())
                return []
            product_ids = sorted(compatible)

        text = query.text.strip() if query.text else None
        filters = ProductQueryFilters(
            category=query.category,
            brand=query.brand,
            min_price=query.min_price,
            max_price=query.max_price,
            text=text or None,
            in_stock_only=query.in_stock_only,
            product_ids=product_ids,
            sort=query.sort,
        )
        return self._products.search_products(filters, limit=query.limit, offset=query.offset)

    def recommended_for_motorcycle(self, selector: MotorcycleSelector, limit: int = 8) -> List[Product]:
        """In-stock products that fit the motorcycle, best stocked first."""

        return self.search(
            CatalogQuery(
                motorcycle=selector,
                in_stock_only=True,
                sort=ProductSort.STOCK,
                limit=limit,
            )
        )


__all__ = ["CatalogQuery", "CatalogQueryService", "DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE"]
