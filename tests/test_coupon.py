"""
Tests for `domain/coupon.py` and `services/coupon_service.py`.

Covers contract rules:
- Validity window is inclusive on both ends.
- Exhausted, inactive and below-minimum coupons are refused with a reason.
- Validation is pure: repeated calls give the same answer and consume nothing.
- Discounts never exceed the purchase amount.
- Recording a use never pushes used_count past max_uses, even concurrently.
- Codes are case-insensitive and unique.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.coupon import Coupon, CouponRejection, DiscountType, normalize_code
from services.coupon_service import CouponUnavailableError, DuplicateCouponError

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
START = datetime(2025, 6, 1, 0, 0, 0, tzinfo=timezone.utc)
END = datetime(2025, 6, 30, 23, 59, 59, tzinfo=timezone.utc)


def _coupon(**overrides) -> Coupon:
    values = dict(
        coupon_id="c1",
        code="SUMMER10",
        discount=Decimal("10"),
        discount_type=DiscountType.PERCENTAGE,
        valid_from=START,
        valid_to=END,
    )
    values.update(overrides)
    return Coupon(**values)


def test_normalize_code() -> None:
    assert normalize_code("  summer10 ") == "SUMMER10"
    for bad in ("", "   ", "SUMMER 10", "10%OFF"):
        with pytest.raises(ValueError):
            normalize_code(bad)


def test_percentage_and_fixed_discounts() -> None:
    assert _coupon().discount_for(Decimal("150.00")) == Decimal("15.00")
    fixed = _coupon(discount=Decimal("20"), discount_type=DiscountType.FIXED)
    assert fixed.discount_for(Decimal("150.00")) == Decimal("20.00")


def test_discount_never_exceeds_amount() -> None:
    fixed = _coupon(discount=Decimal("50"), discount_type=DiscountType.FIXED)

    assert fixed.discount_for(Decimal("30.00")) == Decimal("30.00")
    assert _coupon(discount=Decimal("100")).discount_for(Decimal("30.00")) == Decimal("30.00")


def test_window_is_inclusive() -> None:
    coupon = _coupon()

    assert coupon.rejection_reason(Decimal("1"), START) is None
    assert coupon.rejection_reason(Decimal("1"), END) is None
    assert coupon.rejection_reason(Decimal("1"), START - timedelta(seconds=1)) is CouponRejection.NOT_YET_VALID
    assert coupon.rejection_reason(Decimal("1"), END + timedelta(seconds=1)) is CouponRejection.EXPIRED


def test_invalid_coupon_definitions() -> None:
    with pytest.raises(ValueError):
        _coupon(discount=Decimal("120"))
    with pytest.raises(ValueError):
        _coupon(valid_from=END, valid_to=START)
    with pytest.raises(ValueError):
        _coupon(code="summer10")
    with pytest.raises(ValueError):
        _coupon(max_uses=1, used_count=2)


def test_summer10_exhausted_is_refused(coupons, coupon_service) -> None:
    """SUMMER10 with max_uses=5 and used_count=5 is refused, whatever the amount."""

    coupons.add(_coupon(max_uses=5, used_count=5))

    result = coupon_service.validate("summer10", Decimal("500.00"), NOW)

    assert result.valid is False
    assert result.rejection is CouponRejection.USAGE_EXHAUSTED
    assert result.discount_amount == Decimal("0.00")


def test_validation_is_pure(coupons, coupon_service) -> None:
    coupons.add(_coupon(max_uses=1))

    first = coupon_service.validate("SUMMER10", Decimal("100.00"), NOW)
    second = coupon_service.validate("SUMMER10", Decimal("100.00"), NOW)

    assert first == second
    assert first.valid is True
    assert first.discount_amount == Decimal("10.00")
    assert coupons.get_by_id("c1").used_count == 0


@pytest.mark.parametrize(
    "overrides,amount,reason",
    [
        ({"is_active": False}, "100", CouponRejection.INACTIVE),
        ({"min_purchase": Decimal("200")}, "199.99", CouponRejection.BELOW_MINIMUM),
        ({"valid_to": START + timedelta(days=1)}, "100", CouponRejection.EXPIRED),
    ],
)
def test_validation_reasons(coupons, coupon_service, overrides, amount, reason) -> None:
    coupons.add(_coupon(**overrides))

    result = coupon_service.validate("SUMMER10", Decimal(amount), NOW)

    assert result.valid is False
    assert result.rejection is reason


def test_unknown_and_malformed_codes(coupon_service) -> None:
    assert coupon_service.validate("NOPE", Decimal("10"), NOW).rejection is CouponRejection.NOT_FOUND
    assert coupon_service.validate("  ", Decimal("10"), NOW).rejection is CouponRejection.MALFORMED_CODE


def test_validation_messages(coupons, coupon_service) -> None:
    coupons.add(_coupon(max_uses=5, used_count=5))
    coupons.add(_coupon(coupon_id="c2", code="WINTER5"))

    assert coupon_service.validate("WINTER5", Decimal("100"), NOW).message == "Coupon applied"
    assert coupon_service.validate("SUMMER10", Decimal("100"), NOW).message == (
        "Coupon has reached its maximum number of uses"
    )
    assert coupon_service.validate("NOPE", Decimal("100"), NOW).message == "Coupon not found"


def test_record_use_increments_until_exhausted(coupons, coupon_service) -> None:
    coupons.add(_coupon(max_uses=2))

    assert coupon_service.record_use("c1").used_count == 1
    assert coupon_service.record_use("c1").used_count == 2
    with pytest.raises(CouponUnavailableError):
        coupon_service.record_use("c1")
    assert coupons.get_by_id("c1").used_count == 2


def test_record_use_unknown_coupon(coupon_service) -> None:
    with pytest.raises(CouponUnavailableError):
        coupon_service.record_use("missing")


def test_concurrent_uses_never_exceed_max_uses(coupons, coupon_service) -> None:
    coupons.add(_coupon(max_uses=5))

    def use(_):
        try:
            coupon_service.record_use("c1")
            return True
        except CouponUnavailableError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(use, range(20)))

    assert coupons.get_by_id("c1").used_count <= 5
    assert outcomes.count(True) == coupons.get_by_id("c1").used_count


def test_create_coupon_normalizes_and_refuses_duplicates(coupon_service) -> None:
    created = coupon_service.create_coupon(
        code=" winter5 ",
        discount=Decimal("5"),
        discount_type=DiscountType.FIXED,
        valid_from=START,
        valid_to=END,
    )

    assert created.code == "WINTER5"
    with pytest.raises(DuplicateCouponError):
        coupon_service.create_coupon(
            code="Winter5",
            discount=Decimal("5"),
            discount_type=DiscountType.FIXED,
            valid_from=START,
            valid_to=END,
        )
