"""
Tests for the Supabase repositories.

The Supabase client is replaced by a MagicMock whose query builder returns
itself from every filter call, so the tests can check which filters were
pushed down and feed back canned rows.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from domain.compatibility import CompatibilityEntry
from domain.coupon import DiscountType
from domain.loyalty import LoyaltyProgram
from domain.order import CustomerInfo, OrderDraft, OrderLineItem, OrderStatus
from repositories.client import StoreSettings
from repositories.coupon_repository import SupabaseCouponRepository
from repositories.loyalty_repository import SupabaseLoyaltyRepository
from repositories.order_repository import SupabaseOrderRepository
from repositories.product_repository import SupabaseProductRepository
from repositories.protocols import ProductQueryFilters, ProductSort, StockReservationStatus

_BUILDER_METHODS = (
    "select", "eq", "in_", "gte", "lte", "gt", "contains", "or_",
    "order", "range", "limit", "insert", "update", "delete",
)

NOW_ISO = "2025-01-01T12:00:00+00:00"


def _response(data):
    return SimpleNamespace(data=data, error=None)


def _client(data=None):
    query = MagicMock()
    for name in _BUILDER_METHODS:
        getattr(query, name).return_value = query
    query.execute.return_value = _response(data if data is not None else [])
    client = MagicMock()
    client.table.return_value = query
    client.rpc.return_value = query
    return client, query


def _rpc_client(data):
    client = MagicMock()
    client.rpc.return_value.execute.return_value = _response(data)
    return client


def _api_error(code: str = "XX000", message: str = "boom") -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


PRODUCT_ROW = {
    "product_id": "p1",
    "name": "Brake pads",
    "price": "24.90",
    "stock": 12,
    "sku": "BP-1",
    "category": "brakes",
    "brand": "Cobreq",
    "compatible_with": [
        {"brand": "Honda", "model": "CG150", "year": "2018", "manual": False, "rule_ids": ["r1"]},
        {"brand": "Honda", "model": "CG150", "year": "2015-2017"},
    ],
    "created_at_utc": "2025-01-01T12:00:00Z",
    "updated_at_utc": None,
}


# ============================================================================
# Products
# ============================================================================

def test_get_product_maps_row() -> None:
    client, query = _client([PRODUCT_ROW])

    product = SupabaseProductRepository(client).get_product("p1")

    client.table.assert_called_with("products")
    query.eq.assert_called_with("product_id", "p1")
    assert product.price == Decimal("24.90")
    assert product.created_at == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    rule_entry, legacy_entry = product.compatible_with
    assert rule_entry.manual is False and rule_entry.rule_ids == frozenset({"r1"})
    assert legacy_entry.manual is True and legacy_entry.rule_ids == frozenset()


def test_get_product_missing_returns_none() -> None:
    client, _ = _client([])

    assert SupabaseProductRepository(client).get_product("nope") is None


def test_search_products_pushes_filters_down() -> None:
    client, query = _client([PRODUCT_ROW])
    filters = ProductQueryFilters(
        category="brakes",
        min_price=Decimal("10"),
        max_price=Decimal("50"),
        text="pads, (front)",
        in_stock_only=True,
        compatible_brand="Honda",
        product_ids=["p1", "p2"],
        sort=ProductSort.PRICE_DESC,
    )

    products = SupabaseProductRepository(client).search_products(filters, limit=24, offset=48)

    assert [p.product_id for p in products] == ["p1"]
    client.rpc.assert_called_with("products_with_ids", {"p_product_ids": ["p1", "p2"]})
    query.in_.assert_not_called()
    query.eq.assert_called_with("category", "brakes")
    query.gte.assert_called_with("price", "10")
    query.lte.assert_called_with("price", "50")
    query.gt.assert_called_with("stock", 0)
    query.contains.assert_called_with("compatible_with", json.dumps([{"brand": "Honda"}]))
    or_filter = query.or_.call_args[0][0]
    assert "name.ilike.*pads   front*" in or_filter
    assert "sku.ilike." in or_filter
    query.order.assert_any_call("price", desc=True)
    query.order.assert_called_with("product_id")
    query.range.assert_called_with(48, 71)


def test_search_pages_in_product_id_order() -> None:
    client, query = _client([PRODUCT_ROW])

    SupabaseProductRepository(client).search_products(
        ProductQueryFilters(compatible_brand="Honda"), limit=500, offset=500
    )

    client.table.assert_called_with("products")
    client.rpc.assert_not_called()
    query.order.assert_called_once_with("product_id")
    query.range.assert_called_with(500, 999)


def test_get_products_sends_ids_in_the_request_body() -> None:
    client, query = _client([PRODUCT_ROW])
    ids = [f"product-{i:05d}" for i in range(2000)]

    products = SupabaseProductRepository(client).get_products(ids)

    assert [p.product_id for p in products] == ["p1"]
    client.rpc.assert_called_once_with("products_with_ids", {"p_product_ids": ids})
    query.in_.assert_not_called()


def test_update_compatibility_is_compare_and_set() -> None:
    client, query = _client([{"product_id": "p1"}])
    entries = [CompatibilityEntry("Honda", "CG150", "2019", manual=False, rule_ids=frozenset({"r2", "r1"}))]

    assert SupabaseProductRepository(client).update_compatibility("p1", entries, expected_version=3) is True

    payload = query.update.call_args[0][0]
    assert payload["compatible_with"] == [
        {"brand": "Honda", "model": "CG150", "year": "2019", "manual": False, "rule_ids": ["r1", "r2"]}
    ]
    assert payload["compatibility_version"] == 4
    query.eq.assert_any_call("product_id", "p1")
    query.eq.assert_any_call("compatibility_version", 3)


def test_update_compatibility_lost_race_returns_false() -> None:
    client, _ = _client([])

    assert SupabaseProductRepository(client).update_compatibility("p1", [], expected_version=0) is False


@pytest.mark.parametrize(
    "data,status,remaining",
    [
        ({"status": "reserved", "stock": 3}, StockReservationStatus.RESERVED, 3),
        ({"status": "insufficient", "stock": 1}, StockReservationStatus.INSUFFICIENT, 1),
        ([{"status": "not_found", "stock": None}], StockReservationStatus.NOT_FOUND, None),
    ],
)
def test_reserve_stock_uses_rpc(data, status, remaining) -> None:
    client = _rpc_client(data)

    reservation = SupabaseProductRepository(client).reserve_stock("p1", 2)

    client.rpc.assert_called_with("reserve_product_stock", {"p_product_id": "p1", "p_quantity": 2})
    assert reservation.status is status
    assert reservation.remaining_stock == remaining


def test_reserve_stock_unexpected_result() -> None:
    with pytest.raises(RuntimeError):
        SupabaseProductRepository(_rpc_client(None)).reserve_stock("p1", 1)


def test_release_stock_returns_new_stock() -> None:
    client = _rpc_client(7)

    assert SupabaseProductRepository(client).release_stock("p1", 2) == 7
    client.rpc.assert_called_with("release_product_stock", {"p_product_id": "p1", "p_quantity": 2})


def test_api_errors_become_runtime_errors() -> None:
    client, query = _client()
    query.execute.side_effect = _api_error()

    with pytest.raises(RuntimeError, match="fetch product"):
        SupabaseProductRepository(client).get_product("p1")


# ============================================================================
# Orders
# ============================================================================

ORDER_ROW = {
    "order_id": "o1",
    "user_id": "user-1",
    "customer_name": "Ana",
    "customer_phone": "123",
    "items": [{"product_id": "p1", "product_name": "Pads", "price": "12.50", "quantity": 2}],
    "total": "25.00",
    "status": "processing",
    "payment_method": "pix",
    "shipping_method": "standard",
    "created_at_utc": NOW_ISO,
    "updated_at_utc": NOW_ISO,
}


def test_create_order_inserts_pending_snapshot() -> None:
    client, query = _client([{"order_id": "x"}])
    draft = OrderDraft(
        customer=CustomerInfo(name="Ana", phone="123", user_id="user-1"),
        items=(OrderLineItem("p1", "Pads", Decimal("12.50"), 2),),
        payment_method="pix",
        shipping_method="standard",
    )

    order = SupabaseOrderRepository(client).create_order(draft, datetime(2025, 1, 1, tzinfo=timezone.utc))

    payload = query.insert.call_args[0][0]
    assert payload["status"] == "pending"
    assert payload["total"] == "25.00"
    assert payload["items"][0]["price"] == "12.50"
    assert payload["order_id"] == order.order_id


def test_update_status_is_conditional_on_expected_status() -> None:
    client, query = _client([ORDER_ROW])

    order = SupabaseOrderRepository(client).update_status(
        "o1", OrderStatus.PENDING, OrderStatus.PROCESSING, datetime(2025, 1, 1, tzinfo=timezone.utc)
    )

    query.eq.assert_any_call("order_id", "o1")
    query.eq.assert_any_call("status", "pending")
    assert order.status is OrderStatus.PROCESSING
    assert order.total == Decimal("25.00")


def test_update_status_lost_race_returns_none() -> None:
    client, _ = _client([])

    assert SupabaseOrderRepository(client).update_status(
        "o1", OrderStatus.PENDING, OrderStatus.PROCESSING, datetime(2025, 1, 1, tzinfo=timezone.utc)
    ) is None


# ============================================================================
# Coupons
# ============================================================================

def test_increment_used_count_is_compare_and_set() -> None:
    client, query = _client([{"coupon_id": "c1"}])

    assert SupabaseCouponRepository(client).increment_used_count("c1", 3) is True
    assert query.update.call_args[0][0]["used_count"] == 4
    query.eq.assert_any_call("used_count", 3)


def test_increment_used_count_lost_race() -> None:
    client, _ = _client([])

    assert SupabaseCouponRepository(client).increment_used_count("c1", 3) is False


def test_create_coupon_maps_unique_violation() -> None:
    client, query = _client([])
    query.execute.side_effect = [_response([]), _api_error(code="23505")]

    with pytest.raises(ValueError, match="already exists"):
        SupabaseCouponRepository(client).create_coupon(
            code="summer10",
            discount=Decimal("10"),
            discount_type=DiscountType.PERCENTAGE,
            valid_from=datetime(2025, 6, 1, tzinfo=timezone.utc),
            valid_to=datetime(2025, 7, 1, tzinfo=timezone.utc),
        )


# ============================================================================
# Loyalty
# ============================================================================

def test_save_points_calls_atomic_function() -> None:
    client = _rpc_client(True)
    at = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    program, entry = LoyaltyProgram.empty("u1").earn(600, "Order #1", at, order_id="o1")

    assert SupabaseLoyaltyRepository(client).save_points(program, entry, expected_points=None) is True

    name, params = client.rpc.call_args[0]
    assert name == "apply_loyalty_points"
    assert params["p_new_points"] == 600
    assert params["p_tier"] == "silver"
    assert params["p_expected_points"] is None
    assert params["p_entry_type"] == "earned"


# ============================================================================
# Settings
# ============================================================================

def test_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "key")
    monkeypatch.setenv("RESTOCK_ON_CANCEL", "true")
    monkeypatch.setenv("LOYALTY_POINTS_UNIT", "50")

    settings = StoreSettings.from_env(env_path=tmp_path / ".env")

    assert settings.restock_on_cancel is True
    assert settings.loyalty_points_unit == 50


def test_settings_require_credentials(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)

    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        StoreSettings.from_env(env_path=tmp_path / ".env")
