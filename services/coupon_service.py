"""
Coupon service.

Validation is pure with respect to stock and to the coupon itself: it never
consumes a use. A use is recorded separately, with record_use(), once an
order has been committed, so an abandoned checkout never spends a coupon.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from domain.coupon import Coupon, CouponRejection, DiscountType, normalize_code
from domain.time import require_utc_timestamp
from repositories.protocols import CouponRepository

logger = logging.getLogger(__name__)

_RECORD_USE_ATTEMPTS = 5

_REJECTION_MESSAGES = {
    CouponRejection.MALFORMED_CODE: "Coupon code is malformed",
    CouponRejection.NOT_FOUND: "Coupon not found",
    CouponRejection.INACTIVE: "Coupon is not active",
    CouponRejection.NOT_YET_VALID: "Coupon is not valid yet",
    CouponRejection.EXPIRED: "Coupon has expired",
    CouponRejection.USAGE_EXHAUSTED: "Coupon has reached its maximum number of uses",
    CouponRejection.BELOW_MINIMUM: "Purchase amount is below the coupon minimum",
}


class CouponUnavailableError(Exception):
    """Raised when a use cannot be recorded for a coupon."""

    def __init__(self, coupon_id: str, reason: str):
        self.coupon_id = coupon_id
        self.reason = reason
        super().__init__(f"Cannot record use of coupon {coupon_id}: {reason}")


class DuplicateCouponError(ValueError):
    """Raised when creating a coupon whose code already exists."""


@dataclass(frozen=True, slots=True)
class CouponValidation:
    """
    Result of validating a coupon code for a purchase.

    valid: True if the coupon can be applied
    coupon: the coupon record (None when the code is unknown or malformed)
    rejection: why the coupon cannot be applied (None when valid)
    discount_amount: discount for the purchase amount (0 when invalid)
    """
    valid: bool
    coupon: Optional[Coupon]
    rejection: Optional[CouponRejection]
    discount_amount: Decimal

    @property
    def message(self) -> str:
        if self.rejection is None:
            return "Coupon applied"
        return _REJECTION_MESSAGES[self.rejection]


def _rejected(reason: CouponRejection, coupon: Optional[Coupon] = None) -> CouponValidation:
    return CouponValidation(
        valid=False, coupon=coupon, rejection=reason, discount_amount=Decimal("0.00")
    )


class CouponService:

    def __init__(self, coupon_repository: CouponRepository):
        self._coupons = coupon_repository

    def validate(self, code: str, purchase_amount: Decimal, now: datetime) -> CouponValidation:
        """
        Check whether code can be applied to a purchase of purchase_amount at now.

        Code lookup is case-insensitive. Two calls with the same arguments and
        no intervening record_use() return the same result.
        """

        require_utc_timestamp("now", now)
        if purchase_amount < 0:
            raise ValueError("purchase_amount must be >= 0")

        try:
            canonical = normalize_code(code)
        except ValueError:
            return _rejected(CouponRejection.MALFORMED_CODE)

        coupon = self._coupons.get_by_code(canonical)
        if coupon is None:
            return _rejected(CouponRejection.NOT_FOUND)

        rejection = coupon.rejection_reason(purchase_amount, now)
        if rejection is not None:
            return _rejected(rejection, coupon)

        return CouponValidation(
            valid=True,
            coupon=coupon,
            rejection=None,
            discount_amount=coupon.discount_for(purchase_amount),
        )

    def record_use(self, coupon_id: str) -> Coupon:
        """
        Count one use of the coupon.

        Uses a compare-and-set on used_count, retried a bounded number of times
        when other checkouts record uses concurrently.

        Raises:
            CouponUnavailableError: unknown coupon, exhausted, or persistent contention
        """

        for _ in range(_RECORD_USE_ATTEMPTS):
            coupon = self._coupons.get_by_id(coupon_id)
            if coupon is None:
                raise CouponUnavailableError(coupon_id, "coupon not found")
            try:
                used = coupon.with_use()
            except ValueError as e:
                raise CouponUnavailableError(coupon_id, str(e)) from None
            if self._coupons.increment_used_count(coupon_id, coupon.used_count):
                logger.info("Recorded use %d of coupon %s", used.used_count, used.code)
                return used

        logger.warning("Gave up recording use of coupon %s after %d attempts", coupon_id, _RECORD_USE_ATTEMPTS)
        raise CouponUnavailableError(coupon_id, "concurrent updates")

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
        """
        Create a coupon with a normalized code.

        Raises:
            ValueError: malformed code or invalid coupon fields
            DuplicateCouponError: the code is already taken
        """

        canonical = normalize_code(code)
        if self._coupons.get_by_code(canonical) is not None:
            raise DuplicateCouponError(f"A coupon with code {canonical} already exists")
        try:
            return self._coupons.create_coupon(
                code=canonical,
                discount=discount,
                discount_type=discount_type,
                valid_from=valid_from,
                valid_to=valid_to,
                min_purchase=min_purchase,
                max_uses=max_uses,
                is_active=is_active,
            )
        except ValueError as e:
            if "already exists" in str(e):
                raise DuplicateCouponError(str(e)) from None
            raise


__all__ = [
    "CouponService",
    "CouponUnavailableError",
    "CouponValidation",
    "DuplicateCouponError",
]
