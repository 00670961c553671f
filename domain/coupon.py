"""
Domain: Discount coupons.

Rules implemented here:
- Codes are unique and case-insensitive; they are stored upper-case.
- A coupon is usable only when it is active, `now` lies inside
  [valid_from, valid_to] (inclusive), its usage budget is not exhausted
  (used_count < max_uses when max_uses is set) and the purchase amount meets
  min_purchase (when set).
- Validity is a pure function of (coupon, purchase_amount, now).
- used_count never exceeds max_uses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp

_CODE_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9_-]{0,63}$")
_CENT = Decimal("0.01")


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CouponRejection(str, Enum):
    MALFORMED_CODE = "MALFORMED_CODE"
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    USAGE_EXHAUSTED = "USAGE_EXHAUSTED"
    BELOW_MINIMUM = "BELOW_MINIMUM"


def normalize_code(code: str) -> str:
    """
    Canonical form of a coupon code (stripped, upper-case).

    Raises ValueError for blank codes or codes with characters other than
    letters, digits, '-' and '_'.
    """

    normalized = code.strip().upper()
    if not _CODE_PATTERN.match(normalized):
        raise ValueError(f"Malformed coupon code: {code!r}")
    return normalized


@dataclass(frozen=True, slots=True)
class Coupon:
    coupon_id: str
    code: str
    discount: Decimal
    discount_type: DiscountType
    valid_from: datetime
    valid_to: datetime
    is_active: bool = True
    min_purchase: Optional[Decimal] = None
    max_uses: Optional[int] = None
    used_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.code != normalize_code(self.code):
            raise ValueError("code must be stored in canonical (upper-case) form")
        if self.discount < 0:
            raise ValueError("discount must be >= 0")
        if self.discount_type is DiscountType.PERCENTAGE and self.discount > 100:
            raise ValueError("percentage discount must be <= 100")
        if self.min_purchase is not None and self.min_purchase < 0:
            raise ValueError("min_purchase must be >= 0")
        if self.max_uses is not None and self.max_uses <= 0:
            raise ValueError("max_uses must be > 0 when set")
        if self.used_count < 0:
            raise ValueError("used_count must be >= 0")
        if self.max_uses is not None and self.used_count > self.max_uses:
            raise ValueError("used_count must not exceed max_uses")
        require_utc_timestamp("valid_from", self.valid_from)
        require_utc_timestamp("valid_to", self.valid_to)
        if self.valid_from > self.valid_to:
            raise ValueError("valid_from must be <= valid_to")

    @property
    def uses_remaining(self) -> Optional[int]:
        if self.max_uses is None:
            return None
        return self.max_uses - self.used_count

    def rejection_reason(self, purchase_amount: Decimal, now: datetime) -> Optional[CouponRejection]:
        """Return why the coupon cannot be used, or None if it can."""

        require_utc_timestamp("now", now)
        if not self.is_active:
            return CouponRejection.INACTIVE
        if now < self.valid_from:
            return CouponRejection.NOT_YET_VALID
        if now > self.valid_to:
            return CouponRejection.EXPIRED
        if self.max_uses is not None and self.used_count >= self.max_uses:
            return CouponRejection.USAGE_EXHAUSTED
        if self.min_purchase is not None and purchase_amount < self.min_purchase:
            return CouponRejection.BELOW_MINIMUM
        return None

    def is_usable(self, purchase_amount: Decimal, now: datetime) -> bool:
        return self.rejection_reason(purchase_amount, now) is None

    def discount_for(self, purchase_amount: Decimal) -> Decimal:
        """Discount applied to a purchase, rounded to cents and capped at the amount."""

        if self.discount_type is DiscountType.PERCENTAGE:
            amount = purchase_amount * self.discount / Decimal("100")
        else:
            amount = self.discount
        amount = min(amount, purchase_amount)
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)

    def with_use(self) -> "Coupon":
        """Return a new Coupon with one more recorded use."""

        if self.max_uses is not None and self.used_count >= self.max_uses:
            raise ValueError(f"Coupon {self.code} has no uses remaining")
        return replace(self, used_count=self.used_count + 1)
