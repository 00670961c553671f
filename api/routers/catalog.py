"""
Catalog API Endpoints.

Endpoints for browsing the product catalog, optionally narrowed to the parts
that fit a given motorcycle.
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_catalog_service, get_product_repository, get_stock_ledger
from api.models import CompatibilityEntryResponse, ProductListResponse, ProductResponse
from domain.compatibility import MotorcycleSelector
from domain.product import Product
from repositories.product_repository import SupabaseProductRepository
from repositories.protocols import ProductSort
from services.catalog_query_service import CatalogQuery, CatalogQueryService
from services.stock_ledger import StockLedger

router = APIRouter()


def product_to_response(product: Product) -> ProductResponse:
    return ProductResponse(
        product_id=product.product_id,
        name=product.name,
        price=product.price,
        stock=product.stock,
        sku=product.sku,
        description=product.description,
        category=product.category,
        brand=product.brand,
        compatible_with=[
            CompatibilityEntryResponse(
                brand=entry.brand, model=entry.model, year=entry.year, manual=entry.manual
            )
            for entry in product.compatible_with
        ],
    )


def _listing(products: List[Product], filters_applied: dict) -> ProductListResponse:
    items = [product_to_response(p) for p in products]
    return ProductListResponse(items=items, total_count=len(items), filters_applied=filters_applied)


@router.get(
    "/products",
    response_model=ProductListResponse,
    summary="Search Catalog",
    description="List products filtered by category, brand, price range, free text and motorcycle compatibility."
)
def search_products(
    category: Optional[str] = Query(None, description="Filter by category"),
    brand: Optional[str] = Query(None, description="Filter by part brand"),
    min_price: Optional[Decimal] = Query(None, ge=0, description="Minimum price (inclusive)"),
    max_price: Optional[Decimal] = Query(None, ge=0, description="Maximum price (inclusive)"),
    q: Optional[str] = Query(None, description="Free text over name, description, brand and SKU"),
    motorcycle_brand: Optional[str] = Query(None, description="Only parts that fit this motorcycle brand"),
    motorcycle_model: Optional[str] = Query(None, description="Narrow to this model (needs motorcycle_brand)"),
    motorcycle_year: Optional[int] = Query(None, gt=0, description="Narrow to this year (needs motorcycle_brand)"),
    in_stock: bool = Query(False, description="Only products with stock"),
    sort: Optional[str] = Query(None, description="price-asc, price-desc, newest, name or stock"),
    limit: int = Query(24, ge=1, le=100),
    offset: int = Query(0, ge=0),
    catalog: CatalogQueryService = Depends(get_catalog_service),
):
    """
    Search the catalog.

    **Example usage:**
    - Everything in a category: `GET /api/v1/products?category=brakes`
    - Parts for a bike: `GET /api/v1/products?motorcycle_brand=Honda&motorcycle_model=CG150&motorcycle_year=2019`
    - Cheapest first: `GET /api/v1/products?q=pads&sort=price-asc`
    """
    try:
        sort_order = None
        if sort:
            try:
                sort_order = ProductSort(sort)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid sort. Got '{sort}'")

        motorcycle = None
        if motorcycle_brand:
            motorcycle = MotorcycleSelector(
                brand=motorcycle_brand, model=motorcycle_model, year=motorcycle_year
            )
        elif motorcycle_model or motorcycle_year:
            raise HTTPException(
                status_code=400,
                detail="motorcycle_brand is required when filtering by model or year"
            )

        query = CatalogQuery(
            category=category,
            brand=brand,
            min_price=min_price,
            max_price=max_price,
            text=q,
            motorcycle=motorcycle,
            in_stock_only=in_stock,
            sort=sort_order,
            limit=limit,
            offset=offset,
        )
        products = catalog.search(query)

        filters_applied = {
            key: value
            for key, value in {
                "category": category,
                "brand": brand,
                "min_price": str(min_price) if min_price is not None else None,
                "max_price": str(max_price) if max_price is not None else None,
                "q": q,
                "motorcycle_brand": motorcycle_brand,
                "motorcycle_model": motorcycle_model,
                "motorcycle_year": motorcycle_year,
                "in_stock": in_stock or None,
                "sort": sort,
            }.items()
            if value is not None
        }
        return _listing(products, filters_applied)

    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to search products: {str(e)}"
        )


@router.get(
    "/products/recommended",
    response_model=ProductListResponse,
    summary="Recommended Parts",
    description="In-stock parts that fit a motorcycle, best stocked first."
)
def recommended_products(
    brand: str = Query(..., min_length=1),
    model: Optional[str] = Query(None),
    year: Optional[int] = Query(None, gt=0),
    limit: int = Query(8, ge=1, le=100),
    catalog: CatalogQueryService = Depends(get_catalog_service),
):
    try:
        selector = MotorcycleSelector(brand=brand, model=model, year=year)
        products = catalog.recommended_for_motorcycle(selector, limit=limit)
        return _listing(products, {"brand": brand, "model": model, "year": year})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load recommendations: {str(e)}")


@router.get(
    "/products/low-stock",
    response_model=ProductListResponse,
    summary="Low Stock Report",
    description="Products whose stock is at or below a threshold, lowest first."
)
def low_stock_products(
    threshold: int = Query(0, ge=0),
    ledger: StockLedger = Depends(get_stock_ledger),
):
    try:
        return _listing(ledger.low_stock(threshold), {"threshold": threshold})
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load stock report: {str(e)}")


@router.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    summary="Get Product"
)
def get_product(
    product_id: str,
    products: SupabaseProductRepository = Depends(get_product_repository),
):
    try:
        product = products.get_product(product_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch product: {str(e)}")
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    return product_to_response(product)
