"""
Loyalty API Endpoints.

Endpoints for reading a customer's points, tier and history, and for
crediting or redeeming points.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_loyalty_service
from api.models import (
    LoyaltyProgramResponse,
    PointsHistoryResponse,
    PointsRequest,
    TierBenefitsResponse,
)
from domain.loyalty import InsufficientPointsError, LoyaltyProgram
from services.loyalty_service import LoyaltyConflictError, LoyaltyService

router = APIRouter()


def _program_to_response(program: LoyaltyProgram) -> LoyaltyProgramResponse:
    benefits = program.benefits
    return LoyaltyProgramResponse(
        user_id=program.user_id,
        points=program.points,
        tier=program.tier.value,
        benefits=TierBenefitsResponse(
            discount_percentage=benefits.discount_percentage,
            free_shipping=benefits.free_shipping,
            priority_support=benefits.priority_support,
            exclusive_offers=benefits.exclusive_offers,
        ),
        history=[
            PointsHistoryResponse(
                amount=entry.amount,
                entry_type=entry.entry_type.value,
                description=entry.description,
                created_at=entry.created_at,
                order_id=entry.order_id,
            )
            for entry in program.history
        ],
    )


@router.get(
    "/loyalty/{user_id}",
    response_model=LoyaltyProgramResponse,
    summary="Get Loyalty Program",
    description="Points balance, tier, tier benefits and history (newest first)."
)
def get_program(
    user_id: str,
    loyalty: LoyaltyService = Depends(get_loyalty_service),
):
    try:
        return _program_to_response(loyalty.get_program(user_id))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch loyalty program: {str(e)}")


@router.post(
    "/loyalty/{user_id}/points",
    response_model=LoyaltyProgramResponse,
    summary="Add Points"
)
def add_points(
    user_id: str,
    request: PointsRequest,
    loyalty: LoyaltyService = Depends(get_loyalty_service),
):
    try:
        program = loyalty.add_points(
            user_id, request.amount, request.description, order_id=request.order_id
        )
        return _program_to_response(program)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LoyaltyConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to add points: {str(e)}")


@router.post(
    "/loyalty/{user_id}/redeem",
    response_model=LoyaltyProgramResponse,
    summary="Redeem Points"
)
def redeem_points(
    user_id: str,
    request: PointsRequest,
    loyalty: LoyaltyService = Depends(get_loyalty_service),
):
    try:
        program = loyalty.redeem_points(user_id, request.amount, request.description)
        return _program_to_response(program)
    except InsufficientPointsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LoyaltyConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to redeem points: {str(e)}")
