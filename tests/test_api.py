"""
API tests.

The routers run against the in-memory repositories through FastAPI
dependency overrides; no Supabase project is needed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api import dependencies
from api.main import app
from domain.coupon import Coupon, DiscountType
from fakes import entry, make_product


@pytest.fixture
def client(products, resolver, catalog, ledger, coupon_service, loyalty_service, engine):
    app.dependency_overrides[dependencies.get_product_repository] = lambda: products
    app.dependency_overrides[dependencies.get_compatibility_resolver] = lambda: resolver
    app.dependency_overrides[dependencies.get_catalog_service] = lambda: catalog
    app.dependency_overrides[dependencies.get_stock_ledger] = lambda: ledger
    app.dependency_overrides[dependencies.get_coupon_service] = lambda: coupon_service
    app.dependency_overrides[dependencies.get_loyalty_service] = lambda: loyalty_service
    app.dependency_overrides[dependencies.get_order_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def _order_body(*items, coupon_code=None):
    body = {
        "customer": {"name": "Ana Souza", "phone": "+55 11 99999-0000", "user_id": "user-1"},
        "items": [{"product_id": pid, "quantity": qty} for pid, qty in items],
        "payment_method": "pix",
        "shipping_method": "standard",
    }
    if coupon_code:
        body["coupon_code"] = coupon_code
    return body


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_search_products_by_motorcycle(client, products) -> None:
    products.add(make_product("pads", compatible_with=[entry("Honda", "CG150", "2018-2020")]))
    products.add(make_product("chain", compatible_with=[entry("Yamaha", "Fazer 250", "2016")]))

    response = client.get(
        "/api/v1/products",
        params={"motorcycle_brand": "Honda", "motorcycle_model": "CG150", "motorcycle_year": 2019},
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["product_id"] for item in body["items"]] == ["pads"]
    assert body["filters_applied"]["motorcycle_brand"] == "Honda"


def test_search_rejects_bad_sort_and_model_without_brand(client) -> None:
    assert client.get("/api/v1/products", params={"sort": "random"}).status_code == 400
    assert client.get("/api/v1/products", params={"motorcycle_model": "CG150"}).status_code == 400
    assert client.get("/api/v1/products", params={"min_price": 50, "max_price": 10}).status_code == 400


def test_get_product_not_found(client) -> None:
    assert client.get("/api/v1/products/missing").status_code == 404


def test_low_stock_report(client, products) -> None:
    products.add(make_product("a", stock=0))
    products.add(make_product("b", stock=8))

    response = client.get("/api/v1/products/low-stock", params={"threshold": 2})

    assert [item["product_id"] for item in response.json()["items"]] == ["a"]


def test_rule_lifecycle(client, products) -> None:
    products.add(make_product("p1"))

    created = client.post(
        "/api/v1/compatibility-rules", json={"product_ids": ["p1"], "motorcycle_ids": ["cg150"]}
    )
    assert created.status_code == 201
    rule_id = created.json()["rule_id"]

    check = client.get(
        "/api/v1/products/p1/compatibility", params={"brand": "Honda", "model": "CG150", "year": 2019}
    )
    assert check.json()["compatible"] is True

    assert client.delete(f"/api/v1/compatibility-rules/{rule_id}").status_code == 200
    check = client.get("/api/v1/products/p1/compatibility", params={"brand": "Honda"})
    assert check.json()["compatible"] is False
    assert client.delete(f"/api/v1/compatibility-rules/{rule_id}").status_code == 404


def test_patch_rule_null_clears_notes_and_keeps_category(client, products) -> None:
    products.add(make_product("oil", category="lubricants"))
    rule_id = client.post(
        "/api/v1/compatibility-rules",
        json={"product_ids": ["oil"], "is_universal": True, "category_id": "lubricants", "notes": "All bikes"},
    ).json()["rule_id"]

    response = client.patch(f"/api/v1/compatibility-rules/{rule_id}", json={"notes": None})

    assert response.status_code == 200
    assert response.json()["notes"] is None
    assert response.json()["category_id"] == "lubricants"


def test_create_rule_without_motorcycles_is_rejected(client) -> None:
    response = client.post("/api/v1/compatibility-rules", json={"product_ids": ["p1"]})

    assert response.status_code == 400


def test_duplicate_motorcycle_model_conflicts(client) -> None:
    response = client.post(
        "/api/v1/motorcycles", json={"brand": "Honda", "model": "CG150", "years": [2021]}
    )

    assert response.status_code == 409


def test_place_order_and_follow_ups(client, products, coupons) -> None:
    now = datetime.now(timezone.utc)
    coupons.add(
        Coupon(
            coupon_id="c1",
            code="SUMMER10",
            discount=Decimal("10"),
            discount_type=DiscountType.PERCENTAGE,
            valid_from=now - timedelta(days=1),
            valid_to=now + timedelta(days=1),
        )
    )
    products.add(make_product("p1", price="100.00", stock=5))

    response = client.post("/api/v1/orders", json=_order_body(("p1", 2), coupon_code="summer10"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["order"]["status"] == "pending"
    assert Decimal(body["order"]["total"]) == Decimal("200.00")
    assert body["follow_up"]["coupon_recorded"] is True
    assert body["follow_up"]["points_awarded"] == 2


def test_place_order_insufficient_stock_conflicts(client, products) -> None:
    products.add(make_product("p1", stock=1))

    response = client.post("/api/v1/orders", json=_order_body(("p1", 2)))

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "INSUFFICIENT_STOCK"
    assert body["insufficient_product_ids"] == ["p1"]


def test_place_order_validation_failure(client) -> None:
    response = client.post("/api/v1/orders", json=_order_body())

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_FAILED"


def test_order_status_transitions(client, products) -> None:
    products.add(make_product("p1", stock=5))
    order_id = client.post("/api/v1/orders", json=_order_body(("p1", 1))).json()["order"]["order_id"]

    ok = client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "processing"})
    assert ok.status_code == 200
    assert ok.json()["order"]["status"] == "processing"

    bad = client.patch(f"/api/v1/orders/{order_id}/status", json={"status": "pending"})
    assert bad.status_code == 400
    assert bad.json()["error_code"] == "INVALID_TRANSITION"

    missing = client.patch("/api/v1/orders/nope/status", json={"status": "shipped"})
    assert missing.status_code == 404


def test_list_orders(client, products) -> None:
    products.add(make_product("p1", stock=5))
    client.post("/api/v1/orders", json=_order_body(("p1", 1)))

    response = client.get("/api/v1/orders", params={"status": "pending"})

    assert response.json()["total_count"] == 1
    assert client.get("/api/v1/orders", params={"status": "lost"}).status_code == 400


def test_validate_coupon(client, coupons) -> None:
    now = datetime.now(timezone.utc)
    coupons.add(
        Coupon(
            coupon_id="c1",
            code="SUMMER10",
            discount=Decimal("10"),
            discount_type=DiscountType.PERCENTAGE,
            valid_from=now - timedelta(days=1),
            valid_to=now + timedelta(days=1),
            max_uses=5,
            used_count=5,
        )
    )

    response = client.post("/api/v1/coupons/validate", json={"code": "summer10", "purchase_amount": "150"})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["reason"] == "USAGE_EXHAUSTED"


def test_create_coupon_conflict(client) -> None:
    body = {
        "code": "winter5",
        "discount": "5",
        "discount_type": "fixed",
        "valid_from": "2025-06-01T00:00:00Z",
        "valid_to": "2025-07-01T00:00:00Z",
    }

    first = client.post("/api/v1/coupons", json=body)
    assert first.status_code == 201
    assert first.json()["code"] == "WINTER5"
    assert client.post("/api/v1/coupons", json=body).status_code == 409
    assert client.post("/api/v1/coupons", json={**body, "code": "x", "discount_type": "bogus"}).status_code == 400


def test_loyalty_points(client) -> None:
    added = client.post("/api/v1/loyalty/u1/points", json={"amount": 600, "description": "Bonus"})
    assert added.status_code == 200
    assert added.json()["tier"] == "silver"

    refused = client.post("/api/v1/loyalty/u1/redeem", json={"amount": 1000, "description": "Too much"})
    assert refused.status_code == 409

    program = client.get("/api/v1/loyalty/u1").json()
    assert program["points"] == 600
    assert len(program["history"]) == 1
