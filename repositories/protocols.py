"""
Repository interfaces used by the services.

Services are constructed with objects that satisfy these protocols. The
production implementations live next to this module and talk to Supabase;
anything else that honours the same contracts (notably the atomicity of
`reserve_stock`) can stand in for them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence

from domain.compatibility import CompatibilityEntry, CompatibilityRule, MotorcycleModel
from domain.coupon import Coupon, DiscountType
from domain.loyalty import LoyaltyProgram, PointsHistoryEntry
from domain.order import Order, OrderDraft, OrderStatus
from domain.product import Product


class ProductSort(str, Enum):
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NEWEST = "newest"
    NAME = "name"
    STOCK = "stock"


@dataclass(frozen=True, slots=True)
class ProductQueryFilters:
    """Filter criteria evaluated by the storage layer."""
    category: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    text: Optional[str] = None
    in_stock_only: bool = False
    compatible_brand: Optional[str] = None  # pre-filter on compatibility entries
    product_ids: Optional[Sequence[str]] = None  # restrict to these ids
    sort: Optional[ProductSort] = None


class StockReservationStatus(str, Enum):
    RESERVED = "reserved"
    INSUFFICIENT = "insufficient"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class StockReservation:
    status: StockReservationStatus
    remaining_stock: Optional[int] = None


class ProductRepository(Protocol):

    def get_product(self, product_id: str) -> Optional[Product]:
        ...

    def get_products(self, product_ids: Iterable[str]) -> List[Product]:
        """Products for the given ids; unknown ids are skipped."""
        ...

    def search_products(
        self, filters: ProductQueryFilters, limit: int = 100, offset: int = 0
    ) -> List[Product]:
        ...

    def update_compatibility(
        self, product_id: str, entries: Sequence[CompatibilityEntry], expected_version: int
    ) -> bool:
        """Replace the list only if its version is still expected_version; False otherwise."""
        ...

    def reserve_stock(self, product_id: str, quantity: int) -> StockReservation:
        """
        Decrement stock by quantity only if at least quantity is available.

        Must be a single indivisible check-and-decrement with respect to every
        other reservation on the same product.
        """
        ...

    def release_stock(self, product_id: str, quantity: int) -> int:
        """Increment stock unconditionally; returns the new stock."""
        ...

    def get_stock(self, product_id: str) -> Optional[int]:
        ...

    def list_low_stock(self, threshold: int) -> List[Product]:
        ...


class MotorcycleRepository(Protocol):

    def get_models(self, model_ids: Iterable[str]) -> List[MotorcycleModel]:
        ...

    def list_models(self, brand: Optional[str] = None) -> List[MotorcycleModel]:
        ...

    def add_model(self, brand: str, model: str, years: Sequence[int]) -> MotorcycleModel:
        ...

    def delete_model(self, model_id: str) -> None:
        ...


class CompatibilityRuleRepository(Protocol):

    def create_rule(
        self,
        product_ids: Sequence[str],
        motorcycle_ids: Sequence[str],
        is_universal: bool = False,
        category_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CompatibilityRule:
        ...

    def get_rule(self, rule_id: str) -> Optional[CompatibilityRule]:
        ...

    def save_rule(self, rule: CompatibilityRule) -> CompatibilityRule:
        ...

    def delete_rule(self, rule_id: str) -> None:
        ...

    def list_universal_rules(self) -> List[CompatibilityRule]:
        ...

    def list_rules_for_model(self, model_id: str) -> List[CompatibilityRule]:
        ...


class OrderRepository(Protocol):

    def create_order(self, draft: OrderDraft, created_at: datetime) -> Order:
        """Persist a draft as a new pending order and return it with its generated id."""
        ...

    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    def update_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
    ) -> Optional[Order]:
        """Conditional update; returns None when the stored status is no longer expected_status."""
        ...

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        ...


class CouponRepository(Protocol):

    def get_by_code(self, code: str) -> Optional[Coupon]:
        """Lookup by canonical (upper-case) code."""
        ...

    def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        ...

    def create_coupon(
        self,
        code: str,
        discount: Decimal,
        discount_type: DiscountType,
        valid_from: datetime,
        valid_to: datetime,
        min_purchase: Optional[Decimal] = None,
        max_uses: Optional[int] = None,
        is_active: bool = True,
    ) -> Coupon:
        """Raises ValueError when a coupon with the same code exists."""
        ...

    def increment_used_count(self, coupon_id: str, expected_used_count: int) -> bool:
        """Compare-and-set increment; False when used_count changed concurrently."""
        ...


class LoyaltyRepository(Protocol):

    def get_program(self, user_id: str) -> Optional[LoyaltyProgram]:
        ...

    def save_points(
        self,
        program: LoyaltyProgram,
        entry: PointsHistoryEntry,
        expected_points: Optional[int],
    ) -> bool:
        """
        Store new points, derived tier and the history entry in one atomic step.

        expected_points is the balance the change was computed from (None when
        the program did not exist). Returns False when the stored balance no
        longer matches.
        """
        ...
