"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Catalog Models
# ============================================================================

class CompatibilityEntryResponse(BaseModel):
    """One (brand, model, year) entry; year may be a single year or a "start-end" range."""
    brand: str
    model: str
    year: str
    manual: bool


class ProductResponse(BaseModel):
    """Single product in API response."""
    product_id: str
    name: str
    price: Decimal
    stock: int
    sku: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    compatible_with: List[CompatibilityEntryResponse] = []

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "8c1f3f52-7a43-4d1c-9d55-0f1b1c2a9e10",
                "name": "Brake pads (front)",
                "price": "24.90",
                "stock": 12,
                "sku": "BP-CG150-F",
                "description": "Sintered front brake pads",
                "category": "brakes",
                "brand": "Cobreq",
                "compatible_with": [
                    {"brand": "Honda", "model": "CG150", "year": "2018", "manual": False}
                ]
            }
        }


class ProductListResponse(BaseModel):
    """Response for catalog listings."""
    items: List[ProductResponse]
    total_count: int
    filters_applied: dict

    class Config:
        json_schema_extra = {
            "example": {
                "items": [],
                "total_count": 24,
                "filters_applied": {
                    "category": "brakes",
                    "motorcycle_brand": "Honda",
                    "motorcycle_model": "CG150"
                }
            }
        }


# ============================================================================
# Compatibility Models
# ============================================================================

class CompatibilityCheckResponse(BaseModel):
    product_id: str
    motorcycle: str
    compatible: bool


class MotorcycleModelRequest(BaseModel):
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    years: List[int] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {"brand": "Honda", "model": "CG150", "years": [2018, 2019, 2020]}
        }


class MotorcycleModelResponse(BaseModel):
    model_id: str
    brand: str
    model: str
    years: List[int]


class CompatibilityRuleRequest(BaseModel):
    """Request to create a compatibility rule."""
    product_ids: List[str] = Field(..., min_length=1)
    motorcycle_ids: List[str] = []
    is_universal: bool = False
    category_id: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "product_ids": ["8c1f3f52-7a43-4d1c-9d55-0f1b1c2a9e10"],
                "motorcycle_ids": ["0b6f7d0e-5a8e-4c4b-8e7e-3f0c9a1d2b34"],
                "is_universal": False,
                "notes": "Same caliper on all CG150 years"
            }
        }


class CompatibilityRuleUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their stored values, null clears category_id and notes."""
    product_ids: Optional[List[str]] = None
    motorcycle_ids: Optional[List[str]] = None
    is_universal: Optional[bool] = None
    category_id: Optional[str] = None
    notes: Optional[str] = None


class CompatibilityRuleResponse(BaseModel):
    rule_id: str
    product_ids: List[str]
    motorcycle_ids: List[str]
    is_universal: bool
    category_id: Optional[str] = None
    notes: Optional[str] = None


# ============================================================================
# Order Models
# ============================================================================

class CartItemRequest(BaseModel):
    product_id: str
    quantity: int


class CustomerRequest(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    user_id: Optional[str] = None


class PlaceOrderRequest(BaseModel):
    """Request to place an order from a cart."""
    customer: CustomerRequest
    items: List[CartItemRequest]
    payment_method: str
    shipping_method: str
    notes: Optional[str] = None
    coupon_code: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer": {
                    "name": "Ana Souza",
                    "phone": "+55 11 99999-0000",
                    "email": "ana@example.com",
                    "address": "Rua A, 100",
                    "user_id": "user-123"
                },
                "items": [
                    {"product_id": "8c1f3f52-7a43-4d1c-9d55-0f1b1c2a9e10", "quantity": 2}
                ],
                "payment_method": "pix",
                "shipping_method": "standard",
                "coupon_code": "SUMMER10"
            }
        }


class OrderLineResponse(BaseModel):
    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderResponse(BaseModel):
    order_id: str
    status: str
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    user_id: Optional[str] = None
    items: List[OrderLineResponse]
    total: Decimal
    payment_method: str
    shipping_method: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class FollowUpResponse(BaseModel):
    coupon_recorded: bool
    discount_amount: Decimal
    points_awarded: int
    errors: List[str]


class PlaceOrderResponse(BaseModel):
    """Response from order placement."""
    success: bool
    order: Optional[OrderResponse] = None
    error_code: Optional[str] = None
    errors: List[str] = []
    insufficient_product_ids: List[str] = []
    follow_up: Optional[FollowUpResponse] = None
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "order": None,
                "error_code": "INSUFFICIENT_STOCK",
                "errors": ["Insufficient stock for Brake pads (front)"],
                "insufficient_product_ids": ["8c1f3f52-7a43-4d1c-9d55-0f1b1c2a9e10"],
                "follow_up": None,
                "message": "Order failed. Insufficient stock for Brake pads (front)"
            }
        }


class StatusUpdateRequest(BaseModel):
    status: str

    class Config:
        json_schema_extra = {"example": {"status": "processing"}}


class StatusUpdateResponse(BaseModel):
    success: bool
    order: Optional[OrderResponse] = None
    error_code: Optional[str] = None
    errors: List[str] = []
    restocked: bool = False


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total_count: int


# ============================================================================
# Coupon Models
# ============================================================================

class CouponValidationRequest(BaseModel):
    code: str
    purchase_amount: Decimal = Field(..., ge=0)

    class Config:
        json_schema_extra = {"example": {"code": "summer10", "purchase_amount": "150.00"}}


class CouponValidationResponse(BaseModel):
    valid: bool
    code: Optional[str] = None
    reason: Optional[str] = None
    message: str
    discount_amount: Decimal


class CouponCreateRequest(BaseModel):
    code: str
    discount: Decimal = Field(..., gt=0)
    discount_type: str = Field(..., description="'percentage' or 'fixed'")
    valid_from: datetime
    valid_to: datetime
    min_purchase: Optional[Decimal] = None
    max_uses: Optional[int] = None
    is_active: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "code": "SUMMER10",
                "discount": "10",
                "discount_type": "percentage",
                "valid_from": "2025-12-01T00:00:00Z",
                "valid_to": "2026-03-01T00:00:00Z",
                "min_purchase": "100.00",
                "max_uses": 500
            }
        }


class CouponResponse(BaseModel):
    coupon_id: str
    code: str
    discount: Decimal
    discount_type: str
    valid_from: datetime
    valid_to: datetime
    is_active: bool
    min_purchase: Optional[Decimal] = None
    max_uses: Optional[int] = None
    used_count: int


# ============================================================================
# Loyalty Models
# ============================================================================

class PointsRequest(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    order_id: Optional[str] = None


class TierBenefitsResponse(BaseModel):
    discount_percentage: int
    free_shipping: bool
    priority_support: bool
    exclusive_offers: bool


class PointsHistoryResponse(BaseModel):
    amount: int
    entry_type: str
    description: str
    created_at: datetime
    order_id: Optional[str] = None


class LoyaltyProgramResponse(BaseModel):
    user_id: str
    points: int
    tier: str
    benefits: TierBenefitsResponse
    history: List[PointsHistoryResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "user-123",
                "points": 620,
                "tier": "silver",
                "benefits": {
                    "discount_percentage": 7,
                    "free_shipping": False,
                    "priority_support": False,
                    "exclusive_offers": False
                },
                "history": [
                    {
                        "amount": 20,
                        "entry_type": "earned",
                        "description": "Points earned for order #1042",
                        "created_at": "2025-01-01T12:00:00Z",
                        "order_id": "1042"
                    }
                ]
            }
        }
