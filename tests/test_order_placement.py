"""
Tests for `services/order_placement_service.py` (placement path).

Covers contract rules:
- Validation failures are reported before any stock is touched.
- Placement is all-or-nothing across the lines of an order.
- Two concurrent orders can never oversell the same product.
- Order totals are snapshots and ignore later price changes.
- A storage failure after reserving releases every reservation.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from domain.order import CartItem, CustomerInfo, OrderStatus
from fakes import make_product
from services.order_placement_service import (
    OrderPersistenceError,
    PlaceOrderErrorCode,
)


def _place(engine, customer, *items):
    return engine.place_order(
        customer,
        [CartItem(pid, qty) for pid, qty in items],
        payment_method="pix",
        shipping_method="standard",
    )


def test_place_order_takes_stock_and_stores_pending_order(engine, products, orders, customer) -> None:
    products.add(make_product("p1", price="10.00", stock=5, sku="SKU-1"))
    products.add(make_product("p2", price="2.50", stock=5))

    result = _place(engine, customer, ("p1", 2), ("p2", 1))

    assert result.success is True
    assert result.errors == []
    order = result.order
    assert order.status is OrderStatus.PENDING
    assert order.total == Decimal("22.50")
    assert order.items[0].product_sku == "SKU-1"
    assert products.get_stock("p1") == 3
    assert products.get_stock("p2") == 4
    assert orders.get_order(order.order_id) == order


def test_empty_cart_is_a_validation_failure(engine, customer, products) -> None:
    result = _place(engine, customer)

    assert result.success is False
    assert result.error_code is PlaceOrderErrorCode.VALIDATION_FAILED
    assert products.reserve_calls == 0


@pytest.mark.parametrize("quantity", [0, -2])
def test_non_positive_quantity_is_rejected_before_reserving(engine, products, customer, quantity) -> None:
    products.add(make_product("p1", stock=5))
    products.add(make_product("p2", stock=5))

    result = _place(engine, customer, ("p1", 1), ("p2", quantity))

    assert result.error_code is PlaceOrderErrorCode.VALIDATION_FAILED
    assert products.reserve_calls == 0
    assert products.get_stock("p1") == 5


def test_unknown_product_is_a_validation_failure(engine, products, orders, customer) -> None:
    products.add(make_product("p1", stock=5))

    result = _place(engine, customer, ("p1", 1), ("ghost", 1))

    assert result.error_code is PlaceOrderErrorCode.VALIDATION_FAILED
    assert "Product not found: ghost" in result.errors
    assert products.get_stock("p1") == 5
    assert len(orders) == 0


def test_missing_customer_details_are_reported(engine, products) -> None:
    products.add(make_product("p1"))

    result = _place(engine, CustomerInfo(name=" ", phone=""), ("p1", 1))

    assert result.error_code is PlaceOrderErrorCode.VALIDATION_FAILED
    assert len(result.errors) == 2


def test_duplicate_lines_are_merged(engine, products, customer) -> None:
    products.add(make_product("p1", stock=5))

    result = _place(engine, customer, ("p1", 2), ("p1", 1))

    assert result.success is True
    assert len(result.order.items) == 1
    assert result.order.items[0].quantity == 3
    assert products.get_stock("p1") == 2


def test_merged_lines_are_checked_against_stock_together(engine, products, customer) -> None:
    products.add(make_product("p1", stock=2))

    result = _place(engine, customer, ("p1", 2), ("p1", 1))

    assert result.error_code is PlaceOrderErrorCode.INSUFFICIENT_STOCK
    assert products.get_stock("p1") == 2


def test_insufficient_stock_releases_earlier_lines(engine, products, orders, customer) -> None:
    products.add(make_product("p1", stock=5))
    products.add(make_product("p2", stock=1))
    products.add(make_product("p3", stock=5))

    result = _place(engine, customer, ("p1", 2), ("p2", 3), ("p3", 1))

    assert result.success is False
    assert result.error_code is PlaceOrderErrorCode.INSUFFICIENT_STOCK
    assert result.insufficient_product_ids == ["p2"]
    assert products.get_stock("p1") == 5
    assert products.get_stock("p2") == 1
    assert products.get_stock("p3") == 5
    assert len(orders) == 0


def test_every_short_product_is_reported(engine, products, orders, customer) -> None:
    products.add(make_product("a", stock=5))
    products.add(make_product("b", stock=0))
    products.add(make_product("c", stock=0))

    result = _place(engine, customer, ("a", 1), ("b", 1), ("c", 1))

    assert result.error_code is PlaceOrderErrorCode.INSUFFICIENT_STOCK
    assert set(result.insufficient_product_ids) == {"b", "c"}
    assert len(result.errors) == 2
    assert products.get_stock("a") == 5
    assert len(orders) == 0


def test_two_concurrent_orders_for_the_last_units(engine, products, orders, customer) -> None:
    """Stock 3, two simultaneous orders of 2: exactly one succeeds."""

    products.add(make_product("p1", stock=3))
    barrier = threading.Barrier(2)

    def place(_):
        barrier.wait()
        return _place(engine, customer, ("p1", 2))

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(place, range(2)))

    assert sorted(r.success for r in results) == [False, True]
    failed = next(r for r in results if not r.success)
    assert failed.error_code is PlaceOrderErrorCode.INSUFFICIENT_STOCK
    assert products.get_stock("p1") == 1
    assert len(orders) == 1


def test_many_concurrent_multi_line_orders_keep_stock_consistent(engine, products, orders, customer) -> None:
    products.add(make_product("a", stock=7))
    products.add(make_product("b", stock=7))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: _place(engine, customer, ("a", 1), ("b", 1)), range(20)))

    placed = sum(1 for r in results if r.success)
    assert placed == 7
    assert products.get_stock("a") == 0
    assert products.get_stock("b") == 0
    assert len(orders) == 7


def test_total_is_unaffected_by_later_price_change(engine, products, orders, customer) -> None:
    products.add(make_product("p1", price="12.50", stock=5))

    result = _place(engine, customer, ("p1", 2))
    products.set_price("p1", Decimal("99.00"))

    stored = orders.get_order(result.order.order_id)
    assert stored.total == Decimal("25.00")
    assert stored.items[0].unit_price == Decimal("12.50")


def test_persistence_failure_releases_reservations(engine, products, orders, customer) -> None:
    products.add(make_product("p1", stock=5))
    products.add(make_product("p2", stock=5))
    orders.fail_on_create = RuntimeError("connection reset")

    with pytest.raises(OrderPersistenceError):
        _place(engine, customer, ("p1", 2), ("p2", 3))

    assert products.get_stock("p1") == 5
    assert products.get_stock("p2") == 5
    assert len(orders) == 0
