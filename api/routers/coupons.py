"""
Coupons API Endpoints.

Endpoints for checking a coupon against a cart total and for creating coupons.
Validating never consumes a use; uses are recorded when an order is placed.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_coupon_service
from api.models import (
    CouponCreateRequest,
    CouponResponse,
    CouponValidationRequest,
    CouponValidationResponse,
)
from domain.coupon import Coupon, DiscountType
from domain.time import utc_now
from services.coupon_service import CouponService, DuplicateCouponError

router = APIRouter()


def _coupon_to_response(coupon: Coupon) -> CouponResponse:
    return CouponResponse(
        coupon_id=coupon.coupon_id,
        code=coupon.code,
        discount=coupon.discount,
        discount_type=coupon.discount_type.value,
        valid_from=coupon.valid_from,
        valid_to=coupon.valid_to,
        is_active=coupon.is_active,
        min_purchase=coupon.min_purchase,
        max_uses=coupon.max_uses,
        used_count=coupon.used_count,
    )


@router.post(
    "/coupons/validate",
    response_model=CouponValidationResponse,
    summary="Validate Coupon",
    description="Check a coupon code against a purchase amount and return the discount it would give."
)
def validate_coupon(
    request: CouponValidationRequest,
    coupons: CouponService = Depends(get_coupon_service),
):
    """
    **Example request:**
    ```json
    {"code": "summer10", "purchase_amount": "150.00"}
    ```

    Codes are matched case-insensitively. An invalid coupon is not an error:
    the response has `valid: false` and a `reason`.
    """
    try:
        validation = coupons.validate(request.code, request.purchase_amount, utc_now())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to validate coupon: {str(e)}")

    return CouponValidationResponse(
        valid=validation.valid,
        code=validation.coupon.code if validation.coupon is not None else None,
        reason=validation.rejection.value if validation.rejection is not None else None,
        message=validation.message,
        discount_amount=validation.discount_amount,
    )


@router.post(
    "/coupons",
    response_model=CouponResponse,
    status_code=201,
    summary="Create Coupon"
)
def create_coupon(
    request: CouponCreateRequest,
    coupons: CouponService = Depends(get_coupon_service),
):
    try:
        try:
            discount_type = DiscountType(request.discount_type)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid discount_type. Must be 'percentage' or 'fixed', got '{request.discount_type}'"
            )

        coupon = coupons.create_coupon(
            code=request.code,
            discount=request.discount,
            discount_type=discount_type,
            valid_from=request.valid_from,
            valid_to=request.valid_to,
            min_purchase=request.min_purchase,
            max_uses=request.max_uses,
            is_active=request.is_active,
        )
        return _coupon_to_response(coupon)

    except HTTPException:
        raise
    except DuplicateCouponError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create coupon: {str(e)}")
