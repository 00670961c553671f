"""
Coupon repository (persistence).

Codes are stored in canonical upper-case form; uniqueness is checked before
insert and also enforced by the table's unique constraint. Use recording is a
compare-and-set on used_count so concurrent checkouts cannot push a coupon
past max_uses.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import uuid4

from supabase import Client

from domain.coupon import Coupon, DiscountType, normalize_code
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.response import execute, response_rows

# Supabase table name for coupons.
# Keep this aligned with sql/schema.sql.
_COUPONS_TABLE: str = "coupons"


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _row_to_coupon(row: Mapping[str, Any]) -> Coupon:
    """Convert a Supabase row into a Coupon."""

    return Coupon(
        coupon_id=str(row["coupon_id"]),
        code=str(row["code"]),
        discount=Decimal(str(row["discount"])),
        discount_type=DiscountType(str(row["discount_type"])),
        valid_from=parse_utc_datetime(row["valid_from_utc"]),
        valid_to=parse_utc_datetime(row["valid_to_utc"]),
        is_active=bool(row.get("is_active", True)),
        min_purchase=_optional_decimal(row.get("min_purchase")),
        max_uses=int(row["max_uses"]) if row.get("max_uses") is not None else None,
        used_count=int(row.get("used_count") or 0),
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


class SupabaseCouponRepository:
    """Coupons stored in the `coupons` table."""

    def __init__(self, client: Client):
        self._client = client

    def _fetch_one(self, column: str, value: str, action: str) -> Optional[Coupon]:
        response = execute(
            action,
            lambda: self._client.table(_COUPONS_TABLE)
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute(),
        )
        rows = response_rows(response, action)
        return _row_to_coupon(rows[0]) if rows else None

    def get_by_code(self, code: str) -> Optional[Coupon]:
        return self._fetch_one("code", normalize_code(code), "fetch coupon by code")

    def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        return self._fetch_one("coupon_id", coupon_id, "fetch coupon")

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
        Insert a new coupon with used_count 0.

        Raises:
            ValueError: a coupon with the same (case-insensitive) code exists
        """

        now = utc_now()
        coupon = Coupon(
            coupon_id=str(uuid4()),
            code=normalize_code(code),
            discount=discount,
            discount_type=discount_type,
            valid_from=valid_from,
            valid_to=valid_to,
            is_active=is_active,
            min_purchase=min_purchase,
            max_uses=max_uses,
            used_count=0,
            created_at=now,
            updated_at=now,
        )

        if self.get_by_code(coupon.code) is not None:
            raise ValueError(f"A coupon with code {coupon.code} already exists")

        payload: dict[str, Any] = {
            "coupon_id": coupon.coupon_id,
            "code": coupon.code,
            "discount": str(coupon.discount),
            "discount_type": coupon.discount_type.value,
            "valid_from_utc": to_iso_utc(coupon.valid_from, name="valid_from"),
            "valid_to_utc": to_iso_utc(coupon.valid_to, name="valid_to"),
            "is_active": coupon.is_active,
            "min_purchase": str(coupon.min_purchase) if coupon.min_purchase is not None else None,
            "max_uses": coupon.max_uses,
            "used_count": 0,
            "created_at_utc": to_iso_utc(now, name="created_at"),
            "updated_at_utc": to_iso_utc(now, name="updated_at"),
        }

        try:
            response = execute(
                "create coupon",
                lambda: self._client.table(_COUPONS_TABLE).insert(payload).execute(),
            )
        except RuntimeError as e:
            # Unique violation raised by the table constraint (lost race on the same code).
            if str(getattr(e.__cause__, "code", "")) == "23505":
                raise ValueError(f"A coupon with code {coupon.code} already exists") from None
            raise
        response_rows(response, "create coupon")
        return coupon

    def increment_used_count(self, coupon_id: str, expected_used_count: int) -> bool:
        """
        Set used_count to expected_used_count + 1 if it is still expected_used_count.

        Returns False when another checkout recorded a use first.
        """

        payload: dict[str, Any] = {
            "used_count": expected_used_count + 1,
            "updated_at_utc": to_iso_utc(utc_now(), name="updated_at"),
        }
        response = execute(
            "record coupon use",
            lambda: self._client.table(_COUPONS_TABLE)
            .update(payload)
            .eq("coupon_id", coupon_id)
            .eq("used_count", expected_used_count)
            .execute(),
        )
        return bool(response_rows(response, "record coupon use"))


__all__ = ["SupabaseCouponRepository"]
