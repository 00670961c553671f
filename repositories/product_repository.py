"""
Product repository (persistence).

Persistence operations for the Product entity and its stock counter. Stock
reservations are delegated to the `reserve_product_stock` PostgreSQL function
(see sql/schema.sql), which checks and decrements in a single UPDATE so two
concurrent reservations for the last unit can never both succeed.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from supabase import Client

from domain.compatibility import CompatibilityEntry
from domain.product import Product
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.protocols import (
    ProductQueryFilters,
    ProductSort,
    StockReservation,
    StockReservationStatus,
)
from repositories.response import execute, response_data, response_rows

# Supabase table name for products.
# Keep this aligned with sql/schema.sql.
_PRODUCTS_TABLE: str = "products"
_PRODUCTS_WITH_IDS: str = "products_with_ids"

_SORT_COLUMNS: Dict[ProductSort, tuple[str, bool]] = {
    ProductSort.PRICE_ASC: ("price", False),
    ProductSort.PRICE_DESC: ("price", True),
    ProductSort.NEWEST: ("created_at_utc", True),
    ProductSort.NAME: ("name", False),
    ProductSort.STOCK: ("stock", True),
}

# Characters with meaning inside a PostgREST or=(...) filter.
_FILTER_RESERVED = str.maketrans({",": " ", "(": " ", ")": " ", "%": " ", "*": " "})


def entry_to_document(entry: CompatibilityEntry) -> Dict[str, Any]:
    return {
        "brand": entry.brand,
        "model": entry.model,
        "year": entry.year,
        "manual": entry.manual,
        "rule_ids": sorted(entry.rule_ids),
    }


def entry_from_document(doc: Mapping[str, Any]) -> CompatibilityEntry:
    """Entries written before provenance tracking count as manual."""

    return CompatibilityEntry(
        brand=str(doc["brand"]),
        model=str(doc["model"]),
        year=str(doc["year"]),
        manual=bool(doc.get("manual", True)),
        rule_ids=frozenset(str(r) for r in doc.get("rule_ids") or ()),
    )


def _row_to_product(row: Mapping[str, Any]) -> Product:
    """Convert a Supabase row into a Product."""

    return Product(
        product_id=str(row["product_id"]),
        name=str(row["name"]),
        price=Decimal(str(row["price"])),
        stock=int(row["stock"]),
        sku=row.get("sku"),
        description=row.get("description"),
        category=row.get("category"),
        brand=row.get("brand"),
        compatible_with=tuple(entry_from_document(doc) for doc in row.get("compatible_with") or ()),
        compatibility_version=int(row.get("compatibility_version") or 0),
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


class SupabaseProductRepository:
    """Products stored in the `products` table."""

    def __init__(self, client: Client):
        self._client = client

    def get_product(self, product_id: str) -> Optional[Product]:
        response = execute(
            "fetch product",
            lambda: self._client.table(_PRODUCTS_TABLE)
            .select("*")
            .eq("product_id", product_id)
            .limit(1)
            .execute(),
        )
        rows = response_rows(response, "fetch product")
        return _row_to_product(rows[0]) if rows else None

    def _select(self, product_ids: Optional[Iterable[str]] = None):
        """
        Base product query, optionally narrowed to ids.

        Id lists go through products_with_ids() so they travel in the POST
        body; a long in.(...) filter would overflow the request URL.
        """

        if product_ids is None:
            return self._client.table(_PRODUCTS_TABLE).select("*")
        return self._client.rpc(_PRODUCTS_WITH_IDS, {"p_product_ids": list(product_ids)})

    def get_products(self, product_ids: Iterable[str]) -> List[Product]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        response = execute("fetch products", self._select(ids).execute)
        return [_row_to_product(row) for row in response_rows(response, "fetch products")]

    def search_products(
        self, filters: ProductQueryFilters, limit: int = 100, offset: int = 0
    ) -> List[Product]:
        """
        Query products with storage-side filters.

        Free text matches name, description, brand and SKU case-insensitively.
        Results are always ordered by product_id after the requested sort so
        offset pages never skip or repeat rows.
        """

        query = self._select(filters.product_ids)

        if filters.category:
            query = query.eq("category", filters.category)
        if filters.brand:
            query = query.eq("brand", filters.brand)
        if filters.min_price is not None:
            query = query.gte("price", str(filters.min_price))
        if filters.max_price is not None:
            query = query.lte("price", str(filters.max_price))
        if filters.in_stock_only:
            query = query.gt("stock", 0)
        if filters.compatible_brand:
            query = query.contains(
                "compatible_with", json.dumps([{"brand": filters.compatible_brand}])
            )
        if filters.text:
            term = filters.text.translate(_FILTER_RESERVED).strip()
            if term:
                query = query.or_(
                    ",".join(
                        f"{column}.ilike.*{term}*"
                        for column in ("name", "description", "brand", "sku")
                    )
                )

        if filters.sort is not None:
            column, descending = _SORT_COLUMNS[filters.sort]
            query = query.order(column, desc=descending)
        query = query.order("product_id")

        query = query.range(offset, offset + limit - 1)

        response = execute("search products", query.execute)
        return [_row_to_product(row) for row in response_rows(response, "search products")]

    def update_compatibility(
        self, product_id: str, entries: Sequence[CompatibilityEntry], expected_version: int
    ) -> bool:
        """
        Compare-and-set write of the compatibility list.

        Matches only while compatibility_version still equals expected_version
        and bumps it, so a concurrent rule fan-out cannot be overwritten.
        Returns False when no row matched (version moved or product gone).
        """

        payload: dict[str, Any] = {
            "compatible_with": [entry_to_document(entry) for entry in entries],
            "compatibility_version": expected_version + 1,
            "updated_at_utc": to_iso_utc(utc_now(), name="updated_at"),
        }
        response = execute(
            "update product compatibility",
            lambda: self._client.table(_PRODUCTS_TABLE)
            .update(payload)
            .eq("product_id", product_id)
            .eq("compatibility_version", expected_version)
            .execute(),
        )
        return bool(response_rows(response, "update product compatibility"))

    def reserve_stock(self, product_id: str, quantity: int) -> StockReservation:
        """
        Atomic conditional decrement via reserve_product_stock().

        The function returns {"status": "reserved"|"insufficient"|"not_found",
        "stock": <stock after the call or null>}.
        """

        response = execute(
            "reserve stock",
            lambda: self._client.rpc(
                "reserve_product_stock",
                {"p_product_id": product_id, "p_quantity": quantity},
            ).execute(),
        )
        result = response_data(response, "reserve stock")
        if isinstance(result, list):
            result = result[0] if result else {}
        if not isinstance(result, Mapping) or "status" not in result:
            raise RuntimeError(f"Unexpected reserve_product_stock result: {result!r}")

        stock = result.get("stock")
        return StockReservation(
            status=StockReservationStatus(str(result["status"])),
            remaining_stock=int(stock) if stock is not None else None,
        )

    def release_stock(self, product_id: str, quantity: int) -> int:
        response = execute(
            "release stock",
            lambda: self._client.rpc(
                "release_product_stock",
                {"p_product_id": product_id, "p_quantity": quantity},
            ).execute(),
        )
        result = response_data(response, "release stock")
        if result is None:
            raise ValueError(f"Product not found: {product_id}")
        return int(result)

    def get_stock(self, product_id: str) -> Optional[int]:
        response = execute(
            "fetch stock",
            lambda: self._client.table(_PRODUCTS_TABLE)
            .select("stock")
            .eq("product_id", product_id)
            .limit(1)
            .execute(),
        )
        rows = response_rows(response, "fetch stock")
        return int(rows[0]["stock"]) if rows else None

    def list_low_stock(self, threshold: int) -> List[Product]:
        response = execute(
            "fetch low stock products",
            lambda: self._client.table(_PRODUCTS_TABLE)
            .select("*")
            .lte("stock", threshold)
            .order("stock")
            .execute(),
        )
        return [_row_to_product(row) for row in response_rows(response, "fetch low stock products")]


__all__ = [
    "SupabaseProductRepository",
    "entry_from_document",
    "entry_to_document",
]
