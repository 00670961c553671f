"""
Orders API Endpoints.

Endpoints for placing orders, following their status and listing them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import get_order_engine
from api.models import (
    FollowUpResponse,
    OrderLineResponse,
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from domain.order import CartItem, CustomerInfo, Order, OrderStatus
from services.order_placement_service import (
    OrderPersistenceError,
    OrderPlacementEngine,
    PlaceOrderErrorCode,
    StatusUpdateErrorCode,
)

router = APIRouter()

_PLACE_STATUS = {
    PlaceOrderErrorCode.VALIDATION_FAILED: 400,
    PlaceOrderErrorCode.INSUFFICIENT_STOCK: 409,
}

_UPDATE_STATUS = {
    StatusUpdateErrorCode.INVALID_STATUS: 400,
    StatusUpdateErrorCode.INVALID_TRANSITION: 400,
    StatusUpdateErrorCode.ORDER_NOT_FOUND: 404,
    StatusUpdateErrorCode.CONFLICT: 409,
}


def order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=order.order_id,
        status=order.status.value,
        customer_name=order.customer.name,
        customer_phone=order.customer.phone,
        customer_email=order.customer.email,
        customer_address=order.customer.address,
        user_id=order.customer.user_id,
        items=[
            OrderLineResponse(
                product_id=item.product_id,
                product_name=item.product_name,
                product_sku=item.product_sku,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        total=order.total,
        payment_method=order.payment_method,
        shipping_method=order.shipping_method,
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


@router.post(
    "/orders",
    response_model=PlaceOrderResponse,
    summary="Place Order",
    description="Place an order from a cart with an all-or-nothing stock reservation."
)
def place_order(
    request: PlaceOrderRequest,
    response: Response,
    engine: OrderPlacementEngine = Depends(get_order_engine),
):
    """
    Place an order.

    **Process:**
    1. Validates the customer, the methods and every cart line
    2. Reserves stock for every line, or none at all
    3. Stores the order as pending with the prices at order time
    4. Records the coupon use and awards loyalty points (best effort)

    **Failure responses:**
    - 400 `VALIDATION_FAILED`: empty cart, bad quantity or unknown product
    - 409 `INSUFFICIENT_STOCK`: `insufficient_product_ids` names the products
    """
    customer = CustomerInfo(
        name=request.customer.name,
        phone=request.customer.phone,
        email=request.customer.email,
        address=request.customer.address,
        user_id=request.customer.user_id,
    )
    items = [CartItem(product_id=item.product_id, quantity=item.quantity) for item in request.items]

    try:
        result = engine.place_order(
            customer,
            items,
            payment_method=request.payment_method,
            shipping_method=request.shipping_method,
            notes=request.notes,
        )
    except OrderPersistenceError:
        raise HTTPException(
            status_code=500,
            detail="Failed to place order: the order could not be stored and no stock was taken"
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to place order: {str(e)}")

    if not result.success or result.order is None:
        response.status_code = _PLACE_STATUS.get(result.error_code, 400)
        return PlaceOrderResponse(
            success=False,
            error_code=result.error_code.value if result.error_code is not None else None,
            errors=result.errors,
            insufficient_product_ids=result.insufficient_product_ids,
            message="Order failed. " + " ".join(result.errors),
        )

    report = engine.complete_checkout(result.order, coupon_code=request.coupon_code)
    return PlaceOrderResponse(
        success=True,
        order=order_to_response(result.order),
        follow_up=FollowUpResponse(
            coupon_recorded=report.coupon_recorded,
            discount_amount=report.discount_amount,
            points_awarded=report.points_awarded,
            errors=report.errors,
        ),
        message="Order placed successfully.",
    )


@router.get(
    "/orders",
    response_model=OrderListResponse,
    summary="List Orders"
)
def list_orders(
    status: Optional[str] = Query(None, description="pending, processing, shipped, delivered or cancelled"),
    user_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    engine: OrderPlacementEngine = Depends(get_order_engine),
):
    try:
        status_filter = None
        if status:
            try:
                status_filter = OrderStatus(status)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid status. Got '{status}'")

        orders = engine.list_orders(status=status_filter, user_id=user_id, limit=limit, offset=offset)
        return OrderListResponse(
            items=[order_to_response(o) for o in orders], total_count=len(orders)
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list orders: {str(e)}")


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get Order"
)
def get_order(
    order_id: str,
    engine: OrderPlacementEngine = Depends(get_order_engine),
):
    try:
        order = engine.get_order(order_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch order: {str(e)}")
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return order_to_response(order)


@router.patch(
    "/orders/{order_id}/status",
    response_model=StatusUpdateResponse,
    summary="Update Order Status",
    description="Move an order along pending -> processing -> shipped -> delivered, or cancel it."
)
def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    response: Response,
    engine: OrderPlacementEngine = Depends(get_order_engine),
):
    try:
        result = engine.update_status(order_id, request.status)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update order: {str(e)}")

    if not result.success:
        response.status_code = _UPDATE_STATUS.get(result.error_code, 400)

    return StatusUpdateResponse(
        success=result.success,
        order=order_to_response(result.order) if result.order is not None else None,
        error_code=result.error_code.value if result.error_code is not None else None,
        errors=result.errors,
        restocked=result.restocked,
    )
