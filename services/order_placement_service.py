"""
Order placement engine.

Handles:
- Cart validation before any stock is touched
- All-or-nothing stock reservation with compensating releases
- Persisting the order with snapshot prices
- The order status state machine
- Best-effort checkout follow-ups (coupon use, loyalty points)

An order either exists in full with all its stock taken, or it does not
exist and every unit reserved for it has been given back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from domain.order import CartItem, CustomerInfo, Order, OrderDraft, OrderLineItem, OrderStatus
from domain.product import Product
from domain.time import utc_now
from repositories.protocols import OrderRepository, ProductRepository
from services.coupon_service import CouponService, CouponUnavailableError
from services.loyalty_service import LoyaltyService
from services.stock_ledger import ReservationOutcome, StockLedger

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


class PlaceOrderErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"


class StatusUpdateErrorCode(str, Enum):
    INVALID_STATUS = "INVALID_STATUS"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CONFLICT = "CONFLICT"


class OrderPersistenceError(RuntimeError):
    """
    Raised when stock was reserved but the order could not be stored.

    By the time this is raised the reservations have been released.
    """


@dataclass(frozen=True, slots=True)
class PlaceOrderResult:
    """
    Result of an order placement attempt.

    success: True if the order was stored and its stock taken
    order: the stored order (None unless success=True)
    error_code: why the order was refused (None if success=True)
    errors: human-readable error messages (empty if success=True)
    insufficient_product_ids: products that lacked stock
    """
    success: bool
    order: Optional[Order] = None
    error_code: Optional[PlaceOrderErrorCode] = None
    errors: List[str] = field(default_factory=list)
    insufficient_product_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StatusUpdateResult:
    success: bool
    order: Optional[Order] = None
    error_code: Optional[StatusUpdateErrorCode] = None
    errors: List[str] = field(default_factory=list)
    restocked: bool = False


@dataclass(frozen=True, slots=True)
class FollowUpReport:
    """
    Outcome of the post-commit checkout steps.

    These never affect the committed order; failures are only reported.
    """
    order_id: str
    coupon_recorded: bool = False
    discount_amount: Decimal = Decimal("0.00")
    points_awarded: int = 0
    errors: List[str] = field(default_factory=list)


def _failed(code: PlaceOrderErrorCode, errors: List[str], insufficient: Sequence[str] = ()) -> PlaceOrderResult:
    return PlaceOrderResult(
        success=False,
        error_code=code,
        errors=errors,
        insufficient_product_ids=list(insufficient),
    )


def _merge_lines(line_items: Sequence[CartItem]) -> Tuple[Dict[str, int], List[str]]:
    """Sum quantities per product (cart order preserved) and collect input errors."""

    merged: Dict[str, int] = {}
    errors: List[str] = []
    for index, item in enumerate(line_items):
        product_id = (item.product_id or "").strip()
        quantity = item.quantity
        if not product_id:
            errors.append(f"Line {index + 1}: product id is required")
            continue
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f"Line {index + 1}: quantity must be a positive integer, got {quantity!r}")
            continue
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged, errors


class OrderPlacementEngine:

    def __init__(
        self,
        product_repository: ProductRepository,
        order_repository: OrderRepository,
        stock_ledger: StockLedger,
        coupon_service: Optional[CouponService] = None,
        loyalty_service: Optional[LoyaltyService] = None,
        restock_on_cancel: bool = False,
    ):
        self._products = product_repository
        self._orders = order_repository
        self._ledger = stock_ledger
        self._coupons = coupon_service
        self._loyalty = loyalty_service
        self._restock_on_cancel = restock_on_cancel

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def place_order(
        self,
        customer: CustomerInfo,
        line_items: Sequence[CartItem],
        payment_method: str,
        shipping_method: str,
        notes: Optional[str] = None,
    ) -> PlaceOrderResult:
        """
        Validate the cart, take its stock and store the order.

        Process:
        1. Validate customer, methods and lines; merge duplicate products
        2. Load products and snapshot their names, SKUs and prices
        3. Reserve each line; if any is refused release everything taken and
           report every short product
        4. Store the order as pending; on failure release everything taken

        Raises:
            OrderPersistenceError: the order could not be stored (stock already released)
            RuntimeError: storage failure while validating or reserving
        """

        errors: List[str] = []
        if not customer.name or not customer.name.strip():
            errors.append("Customer name is required")
        if not customer.phone or not customer.phone.strip():
            errors.append("Customer phone is required")
        if not payment_method or not payment_method.strip():
            errors.append("Payment method is required")
        if not shipping_method or not shipping_method.strip():
            errors.append("Shipping method is required")
        if not line_items:
            errors.append("Cart is empty")

        quantities, line_errors = _merge_lines(line_items)
        errors.extend(line_errors)
        if errors:
            return _failed(PlaceOrderErrorCode.VALIDATION_FAILED, errors)

        products: Dict[str, Product] = {
            p.product_id: p for p in self._products.get_products(quantities)
        }
        unknown = [pid for pid in quantities if pid not in products]
        if unknown:
            return _failed(
                PlaceOrderErrorCode.VALIDATION_FAILED,
                [f"Product not found: {pid}" for pid in unknown],
            )

        lines = tuple(
            OrderLineItem(
                product_id=pid,
                product_name=products[pid].name,
                product_sku=products[pid].sku,
                unit_price=products[pid].price,
                quantity=qty,
            )
            for pid, qty in quantities.items()
        )
        draft = OrderDraft(
            customer=customer,
            items=lines,
            payment_method=payment_method.strip(),
            shipping_method=shipping_method.strip(),
            notes=notes,
        )

        reserved: List[OrderLineItem] = []
        short: List[OrderLineItem] = []
        missing: List[str] = []
        for line in draft.items:
            try:
                outcome = self._ledger.reserve(line.product_id, line.quantity)
            except Exception:
                self._release_all(reserved)
                raise

            if outcome is ReservationOutcome.RESERVED:
                reserved.append(line)
            elif outcome is ReservationOutcome.NOT_FOUND:
                missing.append(line.product_id)
            else:
                short.append(line)

        if missing or short:
            self._release_all(reserved)
        if missing:
            return _failed(
                PlaceOrderErrorCode.VALIDATION_FAILED,
                [f"Product not found: {pid}" for pid in missing],
            )
        if short:
            logger.warning(
                "Order refused: insufficient stock for %s",
                ", ".join(f"{line.product_id} (requested {line.quantity})" for line in short),
            )
            return _failed(
                PlaceOrderErrorCode.INSUFFICIENT_STOCK,
                [f"Insufficient stock for {line.product_name}" for line in short],
                insufficient=[line.product_id for line in short],
            )

        try:
            order = self._orders.create_order(draft, created_at=utc_now())
        except Exception as e:
            self._release_all(reserved)
            logger.exception(
                "Failed to store order for %s after reserving %d lines; stock released",
                customer.name,
                len(reserved),
            )
            raise OrderPersistenceError("Order could not be stored") from e

        logger.info(
            "Placed order %s: %d items, total %s", order.order_id, order.item_count, order.total
        )
        return PlaceOrderResult(success=True, order=order)

    def _release_all(self, lines: Sequence[OrderLineItem]) -> List[str]:
        """Give back every reserved line; returns product ids that could not be released."""

        failed: List[str] = []
        for line in lines:
            try:
                self._ledger.release(line.product_id, line.quantity)
            except Exception:
                logger.exception(
                    "Could not release %d of %s during compensation", line.quantity, line.product_id
                )
                failed.append(line.product_id)
        if lines:
            logger.warning("Released reservations for %d lines", len(lines) - len(failed))
        return failed

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def update_status(self, order_id: str, new_status: Union[OrderStatus, str]) -> StatusUpdateResult:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            return StatusUpdateResult(
                success=False,
                error_code=StatusUpdateErrorCode.INVALID_STATUS,
                errors=[f"Unknown order status: {new_status}"],
            )

        order = self._orders.get_order(order_id)
        if order is None:
            return StatusUpdateResult(
                success=False,
                error_code=StatusUpdateErrorCode.ORDER_NOT_FOUND,
                errors=[f"Order not found: {order_id}"],
            )

        now = utc_now()
        try:
            order.with_status(target, now)
        except ValueError as e:
            return StatusUpdateResult(
                success=False,
                order=order,
                error_code=StatusUpdateErrorCode.INVALID_TRANSITION,
                errors=[str(e)],
            )

        updated = self._orders.update_status(order_id, order.status, target, now)
        if updated is None:
            return StatusUpdateResult(
                success=False,
                error_code=StatusUpdateErrorCode.CONFLICT,
                errors=[f"Order {order_id} was changed concurrently"],
            )

        logger.info("Order %s: %s -> %s", order_id, order.status.value, target.value)

        restocked = False
        if target is OrderStatus.CANCELLED and self._restock_on_cancel:
            failed = self._release_all(updated.items)
            restocked = not failed

        return StatusUpdateResult(success=True, order=updated, restocked=restocked)

    # ------------------------------------------------------------------
    # Follow-ups
    # ------------------------------------------------------------------

    def complete_checkout(
        self,
        order: Order,
        coupon_code: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> FollowUpReport:
        """
        Record the coupon use and award loyalty points for a committed order.

        Each step is attempted independently; failures are logged and reported.
        """

        errors: List[str] = []
        coupon_recorded = False
        discount = Decimal("0.00")
        points = 0

        if coupon_code and self._coupons is not None:
            try:
                validation = self._coupons.validate(coupon_code, order.total, utc_now())
                if not validation.valid or validation.coupon is None:
                    errors.append(validation.message)
                else:
                    self._coupons.record_use(validation.coupon.coupon_id)
                    coupon_recorded = True
                    discount = validation.discount_amount
            except (CouponUnavailableError, RuntimeError) as e:
                logger.warning("Coupon follow-up failed for order %s: %s", order.order_id, e)
                errors.append(str(e))

        owner = user_id or order.customer.user_id
        if owner and self._loyalty is not None:
            try:
                program = self._loyalty.award_for_order(owner, order.order_id, order.total)
                if program is not None:
                    points = program.history[0].amount
            except RuntimeError as e:
                logger.warning("Loyalty follow-up failed for order %s: %s", order.order_id, e)
                errors.append(str(e))

        return FollowUpReport(
            order_id=order.order_id,
            coupon_recorded=coupon_recorded,
            discount_amount=discount,
            points_awarded=points,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._orders.get_order(order_id)

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        user_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        return self._orders.list_orders(status=status, user_id=user_id, limit=limit, offset=offset)


__all__ = [
    "FollowUpReport",
    "OrderPersistenceError",
    "OrderPlacementEngine",
    "PlaceOrderErrorCode",
    "PlaceOrderResult",
    "StatusUpdateErrorCode",
    "StatusUpdateResult",
]
