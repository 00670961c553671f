"""
Order repository (persistence).

Orders are append-mostly: they are inserted once as pending and afterwards
only their status changes. Status updates are conditional on the status the
caller validated the transition against, so two admins racing on the same
order cannot both apply a transition.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from supabase import Client

from domain.order import CustomerInfo, Order, OrderDraft, OrderLineItem, OrderStatus
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.response import execute, response_rows

# Supabase table name for orders.
# Keep this aligned with sql/schema.sql.
_ORDERS_TABLE: str = "orders"


def _line_to_document(item: OrderLineItem) -> Dict[str, Any]:
    return {
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_sku": item.product_sku,
        "price": str(item.unit_price),
        "quantity": item.quantity,
    }


def _line_from_document(doc: Mapping[str, Any]) -> OrderLineItem:
    return OrderLineItem(
        product_id=str(doc["product_id"]),
        product_name=str(doc["product_name"]),
        product_sku=doc.get("product_sku"),
        unit_price=Decimal(str(doc["price"])),
        quantity=int(doc["quantity"]),
    )


def _row_to_order(row: Mapping[str, Any]) -> Order:
    """Convert a Supabase row into an Order."""

    return Order(
        order_id=str(row["order_id"]),
        customer=CustomerInfo(
            name=str(row["customer_name"]),
            phone=str(row["customer_phone"]),
            email=row.get("customer_email"),
            address=row.get("customer_address"),
            user_id=row.get("user_id"),
        ),
        items=tuple(_line_from_document(doc) for doc in row.get("items") or ()),
        total=Decimal(str(row["total"])),
        status=OrderStatus(str(row["status"])),
        payment_method=str(row["payment_method"]),
        shipping_method=str(row["shipping_method"]),
        notes=row.get("notes"),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_at=parse_utc_datetime(row["updated_at_utc"]),
    )


class SupabaseOrderRepository:
    """Orders stored in the `orders` table."""

    def __init__(self, client: Client):
        self._client = client

    def create_order(self, draft: OrderDraft, created_at: datetime) -> Order:
        """
        Insert a new order in pending status.

        Returns:
            The stored Order, with its generated id
        """

        order = Order.from_draft(str(uuid4()), draft, created_at)
        timestamp = to_iso_utc(created_at, name="created_at")

        payload: dict[str, Any] = {
            "order_id": order.order_id,
            "user_id": order.customer.user_id,
            "customer_name": order.customer.name,
            "customer_phone": order.customer.phone,
            "customer_email": order.customer.email,
            "customer_address": order.customer.address,
            "items": [_line_to_document(item) for item in order.items],
            "total": str(order.total),
            "status": order.status.value,
            "payment_method": order.payment_method,
            "shipping_method": order.shipping_method,
            "notes": order.notes,
            "created_at_utc": timestamp,
            "updated_at_utc": timestamp,
        }

        response = execute(
            "create order",
            lambda: self._client.table(_ORDERS_TABLE).insert(payload).execute(),
        )
        response_rows(response, "create order")
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        response = execute(
            "fetch order",
            lambda: self._client.table(_ORDERS_TABLE)
            .select("*")
            .eq("order_id", order_id)
            .limit(1)
            .execute(),
        )
        rows = response_rows(response, "fetch order")
        return _row_to_order(rows[0]) if rows else None

    def update_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
    ) -> Optional[Order]:
        """
        Move an order to new_status only if it is still in expected_status.

        Returns the updated Order, or None when no row matched.
        """

        payload: dict[str, Any] = {
            "status": new_status.value,
            "updated_at_utc": to_iso_utc(updated_at, name="updated_at"),
        }
        response = execute(
            "update order status",
            lambda: self._client.table(_ORDERS_TABLE)
            .update(payload)
            .eq("order_id", order_id)
            .eq("status", expected_status.value)
            .execute(),
        )
        rows = response_rows(response, "update order status")
        return _row_to_order(rows[0]) if rows else None

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """Orders, newest first."""

        query = self._client.table(_ORDERS_TABLE).select("*")
        if status is not None:
            query = query.eq("status", status.value)
        if user_id:
            query = query.eq("user_id", user_id)
        query = query.order("created_at_utc", desc=True).range(offset, offset + limit - 1)

        response = execute("list orders", query.execute)
        return [_row_to_order(row) for row in response_rows(response, "list orders")]


__all__ = ["SupabaseOrderRepository"]
