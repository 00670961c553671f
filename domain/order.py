"""
Domain: Orders and the order status state machine.

Rules implemented here:
- Status transitions: pending -> processing -> shipped -> delivered, and
  cancelled from any of pending, processing or shipped. delivered and
  cancelled are terminal.
- Every order starts as pending.
- Line items are snapshots (name, SKU, unit price, quantity at order time);
  the order total is the sum of price * quantity over those snapshots and is
  never recomputed from live product data.

This module contains only pure domain entities/value objects: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Mapping, Optional, Tuple

from .time import require_utc_timestamp


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class CartItem:
    """Client-held cart line. Validated by the order placement engine, not here."""

    product_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class CustomerInfo:
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class OrderLineItem:
    """Line item captured at order time."""

    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    product_sku: Optional[str] = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("quantity must be > 0")
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def _sum_lines(items: Tuple[OrderLineItem, ...]) -> Decimal:
    return sum((item.line_total for item in items), Decimal("0"))


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """
    A validated order whose stock has been reserved but which is not yet stored.

    Storage assigns the id, the timestamps and the initial pending status.
    """

    customer: CustomerInfo
    items: Tuple[OrderLineItem, ...]
    payment_method: str
    shipping_method: str
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("an order needs at least one line item")

    @property
    def total(self) -> Decimal:
        return _sum_lines(self.items)


@dataclass(frozen=True, slots=True)
class Order:
    order_id: str
    customer: CustomerInfo
    items: Tuple[OrderLineItem, ...]
    total: Decimal
    status: OrderStatus
    payment_method: str
    shipping_method: str
    created_at: datetime
    updated_at: datetime
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        if not self.items:
            raise ValueError("an order needs at least one line item")
        if self.total != _sum_lines(self.items):
            raise ValueError("order total must equal the sum of its line items")

    @staticmethod
    def from_draft(order_id: str, draft: OrderDraft, created_at: datetime) -> "Order":
        """Build the stored form of a draft. The initial status is always pending."""

        return Order(
            order_id=order_id,
            customer=draft.customer,
            items=draft.items,
            total=draft.total,
            status=OrderStatus.PENDING,
            payment_method=draft.payment_method,
            shipping_method=draft.shipping_method,
            created_at=created_at,
            updated_at=created_at,
            notes=draft.notes,
        )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def with_status(self, status: OrderStatus, updated_at: datetime) -> "Order":
        """
        Return a new Order in the given status.

        Raises ValueError when the state machine does not allow the transition.
        """

        require_utc_timestamp("updated_at", updated_at)
        if not self.status.can_transition_to(status):
            raise ValueError(
                f"Invalid status transition: {self.status.value} -> {status.value}"
            )
        return replace(self, status=status, updated_at=updated_at)
