"""
Compatibility API Endpoints.

Endpoints for checking which motorcycles a part fits and for maintaining the
motorcycle catalog and the compatibility rules.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_compatibility_resolver, get_product_repository
from api.models import (
    CompatibilityCheckResponse,
    CompatibilityRuleRequest,
    CompatibilityRuleResponse,
    CompatibilityRuleUpdateRequest,
    MotorcycleModelRequest,
    MotorcycleModelResponse,
)
from domain.compatibility import CompatibilityRule, MotorcycleModel
from repositories.product_repository import SupabaseProductRepository
from services.compatibility_service import CompatibilityConflictError, CompatibilityResolver

router = APIRouter()


def _model_to_response(model: MotorcycleModel) -> MotorcycleModelResponse:
    return MotorcycleModelResponse(
        model_id=model.model_id, brand=model.brand, model=model.model, years=list(model.years)
    )


def _rule_to_response(rule: CompatibilityRule) -> CompatibilityRuleResponse:
    return CompatibilityRuleResponse(
        rule_id=rule.rule_id,
        product_ids=list(rule.product_ids),
        motorcycle_ids=list(rule.motorcycle_ids),
        is_universal=rule.is_universal,
        category_id=rule.category_id,
        notes=rule.notes,
    )


@router.get(
    "/products/{product_id}/compatibility",
    response_model=CompatibilityCheckResponse,
    summary="Check Compatibility",
    description="Check whether a product fits a motorcycle, narrowed progressively by brand, model and year."
)
def check_compatibility(
    product_id: str,
    brand: str = Query(..., min_length=1),
    model: Optional[str] = Query(None),
    year: Optional[int] = Query(None, gt=0),
    products: SupabaseProductRepository = Depends(get_product_repository),
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    """
    **Example usage:**
    - `GET /api/v1/products/{id}/compatibility?brand=Honda&model=CG150&year=2019`
    """
    try:
        product = products.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
        compatible = resolver.is_compatible(product, brand, model, year)
        motorcycle = " ".join(str(part) for part in (brand, model, year) if part is not None)
        return CompatibilityCheckResponse(
            product_id=product_id, motorcycle=motorcycle, compatible=compatible
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to check compatibility: {str(e)}")


@router.get(
    "/products/{product_id}/motorcycles",
    response_model=List[MotorcycleModelResponse],
    summary="Motorcycles For Product"
)
def motorcycles_for_product(
    product_id: str,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        return [_model_to_response(m) for m in resolver.motorcycles_for_product(product_id)]
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list motorcycles: {str(e)}")


@router.get(
    "/motorcycles",
    response_model=List[MotorcycleModelResponse],
    summary="List Motorcycle Models"
)
def list_motorcycles(
    brand: Optional[str] = Query(None),
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        return [_model_to_response(m) for m in resolver.list_motorcycle_models(brand)]
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list motorcycles: {str(e)}")


@router.post(
    "/motorcycles",
    response_model=MotorcycleModelResponse,
    status_code=201,
    summary="Add Motorcycle Model"
)
def add_motorcycle(
    request: MotorcycleModelRequest,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        model = resolver.add_motorcycle_model(request.brand, request.model, request.years)
        return _model_to_response(model)
    except ValueError as e:
        raise HTTPException(status_code=409 if "already exists" in str(e) else 400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to add motorcycle: {str(e)}")


@router.delete(
    "/motorcycles/{model_id}",
    summary="Delete Motorcycle Model",
    description="Delete a model and remove it from every compatibility rule that references it."
)
def delete_motorcycle(
    model_id: str,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        rules_updated = resolver.delete_motorcycle_model(model_id)
        return {"model_id": model_id, "rules_updated": rules_updated}
    except CompatibilityConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete motorcycle: {str(e)}")


@router.post(
    "/compatibility-rules",
    response_model=CompatibilityRuleResponse,
    status_code=201,
    summary="Create Compatibility Rule",
    description="Create a rule and copy its expanded (brand, model, year) entries onto each product."
)
def create_rule(
    request: CompatibilityRuleRequest,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        rule = resolver.create_rule(
            product_ids=request.product_ids,
            motorcycle_ids=request.motorcycle_ids,
            is_universal=request.is_universal,
            category_id=request.category_id,
            notes=request.notes,
        )
        return _rule_to_response(rule)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CompatibilityConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create rule: {str(e)}")


@router.get(
    "/compatibility-rules/{rule_id}",
    response_model=CompatibilityRuleResponse,
    summary="Get Compatibility Rule"
)
def get_rule(
    rule_id: str,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        rule = resolver.get_rule(rule_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch rule: {str(e)}")
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Rule not found: {rule_id}")
    return _rule_to_response(rule)


@router.patch(
    "/compatibility-rules/{rule_id}",
    response_model=CompatibilityRuleResponse,
    summary="Update Compatibility Rule"
)
def update_rule(
    rule_id: str,
    request: CompatibilityRuleUpdateRequest,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        rule = resolver.update_rule(rule_id, **request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CompatibilityConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update rule: {str(e)}")
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Rule not found: {rule_id}")
    return _rule_to_response(rule)


@router.delete(
    "/compatibility-rules/{rule_id}",
    summary="Delete Compatibility Rule",
    description="Remove what the rule contributed to its products, then delete it."
)
def delete_rule(
    rule_id: str,
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
):
    try:
        deleted = resolver.delete_rule(rule_id)
    except CompatibilityConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete rule: {str(e)}")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Rule not found: {rule_id}")
    return {"rule_id": rule_id, "deleted": True}
