"""
FastAPI dependency providers.

Settings and the Supabase client are built once per process. Repositories and
services are cheap wrappers around the client and are built per request, so
tests can swap any of them through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from supabase import Client

from repositories.client import StoreSettings, create_supabase_client
from repositories.compatibility_repository import (
    SupabaseCompatibilityRuleRepository,
    SupabaseMotorcycleRepository,
)
from repositories.coupon_repository import SupabaseCouponRepository
from repositories.loyalty_repository import SupabaseLoyaltyRepository
from repositories.order_repository import SupabaseOrderRepository
from repositories.product_repository import SupabaseProductRepository
from services.catalog_query_service import CatalogQueryService
from services.compatibility_service import CompatibilityResolver
from services.coupon_service import CouponService
from services.loyalty_service import LoyaltyService
from services.order_placement_service import OrderPlacementEngine
from services.stock_ledger import StockLedger


@lru_cache(maxsize=1)
def get_settings() -> StoreSettings:
    return StoreSettings.from_env()


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    return create_supabase_client(get_settings())


def get_product_repository(client: Client = Depends(get_supabase_client)) -> SupabaseProductRepository:
    return SupabaseProductRepository(client)


def get_compatibility_resolver(
    client: Client = Depends(get_supabase_client),
) -> CompatibilityResolver:
    return CompatibilityResolver(
        SupabaseProductRepository(client),
        SupabaseMotorcycleRepository(client),
        SupabaseCompatibilityRuleRepository(client),
    )


def get_catalog_service(
    client: Client = Depends(get_supabase_client),
    resolver: CompatibilityResolver = Depends(get_compatibility_resolver),
) -> CatalogQueryService:
    return CatalogQueryService(SupabaseProductRepository(client), resolver)


def get_stock_ledger(client: Client = Depends(get_supabase_client)) -> StockLedger:
    return StockLedger(SupabaseProductRepository(client))


def get_coupon_service(client: Client = Depends(get_supabase_client)) -> CouponService:
    return CouponService(SupabaseCouponRepository(client))


def get_loyalty_service(
    client: Client = Depends(get_supabase_client),
    settings: StoreSettings = Depends(get_settings),
) -> LoyaltyService:
    return LoyaltyService(SupabaseLoyaltyRepository(client), points_unit=settings.loyalty_points_unit)


def get_order_engine(
    client: Client = Depends(get_supabase_client),
    settings: StoreSettings = Depends(get_settings),
    ledger: StockLedger = Depends(get_stock_ledger),
    coupons: CouponService = Depends(get_coupon_service),
    loyalty: LoyaltyService = Depends(get_loyalty_service),
) -> OrderPlacementEngine:
    return OrderPlacementEngine(
        SupabaseProductRepository(client),
        SupabaseOrderRepository(client),
        ledger,
        coupon_service=coupons,
        loyalty_service=loyalty,
        restock_on_cancel=settings.restock_on_cancel,
    )
