"""
Pytest configuration and shared fixtures.

This file adds the project root to the Python path so that tests can import
the domain, repositories, services and api packages, and wires the services
to the in-memory repositories from tests/fakes.py.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from domain.compatibility import MotorcycleModel  # noqa: E402
from domain.order import CustomerInfo  # noqa: E402
from services.catalog_query_service import CatalogQueryService  # noqa: E402
from services.compatibility_service import CompatibilityResolver  # noqa: E402
from services.coupon_service import CouponService  # noqa: E402
from services.loyalty_service import LoyaltyService  # noqa: E402
from services.order_placement_service import OrderPlacementEngine  # noqa: E402
from services.stock_ledger import StockLedger  # noqa: E402
from fakes import (  # noqa: E402
    InMemoryCompatibilityRuleRepository,
    InMemoryCouponRepository,
    InMemoryLoyaltyRepository,
    InMemoryMotorcycleRepository,
    InMemoryOrderRepository,
    InMemoryProductRepository,
)


@pytest.fixture
def products() -> InMemoryProductRepository:
    return InMemoryProductRepository()


@pytest.fixture
def motorcycles() -> InMemoryMotorcycleRepository:
    return InMemoryMotorcycleRepository(
        [
            MotorcycleModel(model_id="cg150", brand="Honda", model="CG150", years=(2018, 2019, 2020)),
            MotorcycleModel(model_id="fazer250", brand="Yamaha", model="Fazer 250", years=(2016, 2018)),
        ]
    )


@pytest.fixture
def rules() -> InMemoryCompatibilityRuleRepository:
    return InMemoryCompatibilityRuleRepository()


@pytest.fixture
def orders() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def coupons() -> InMemoryCouponRepository:
    return InMemoryCouponRepository()


@pytest.fixture
def programs() -> InMemoryLoyaltyRepository:
    return InMemoryLoyaltyRepository()


@pytest.fixture
def resolver(products, motorcycles, rules) -> CompatibilityResolver:
    return CompatibilityResolver(products, motorcycles, rules)


@pytest.fixture
def catalog(products, resolver) -> CatalogQueryService:
    return CatalogQueryService(products, resolver)


@pytest.fixture
def ledger(products) -> StockLedger:
    return StockLedger(products)


@pytest.fixture
def coupon_service(coupons) -> CouponService:
    return CouponService(coupons)


@pytest.fixture
def loyalty_service(programs) -> LoyaltyService:
    return LoyaltyService(programs)


@pytest.fixture
def engine(products, orders, ledger, coupon_service, loyalty_service) -> OrderPlacementEngine:
    return OrderPlacementEngine(
        products,
        orders,
        ledger,
        coupon_service=coupon_service,
        loyalty_service=loyalty_service,
    )


@pytest.fixture
def customer() -> CustomerInfo:
    return CustomerInfo(name="Ana Souza", phone="+55 11 99999-0000", user_id="user-1")
