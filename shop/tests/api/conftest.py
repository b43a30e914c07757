"""
Fixtures for API tests.

The app runs against memory repositories built on the shared ``store``
fixture, so tests can seed data and inspect the store directly.
"""

from typing import Callable, Dict, Generator

import pytest
from fastapi.testclient import TestClient

from shop.api.app import app
from shop.api.dependencies import (
    get_address_repository,
    get_cart_repository,
    get_customer_repository,
    get_order_repository,
    get_payment_gateway,
    get_payment_repository,
    get_product_repository,
    get_settings,
    get_shipment_repository,
)
from shop.repos.memory import (
    MemoryAddressRepository,
    MemoryCartRepository,
    MemoryCustomerRepository,
    MemoryOrderRepository,
    MemoryPaymentGateway,
    MemoryPaymentRepository,
    MemoryProductRepository,
    MemoryShipmentRepository,
    MemoryStore,
)
from shop.settings import ShopSettings

CUSTOMER_HEADERS = {"X-User-Id": "user-1"}
ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture
def settings() -> ShopSettings:
    return ShopSettings(storage="memory")


@pytest.fixture
def client(
    store: MemoryStore,
    gateway: MemoryPaymentGateway,
    settings: ShopSettings,
) -> Generator[TestClient, None, None]:
    """Test client with every repository backed by ``store``."""

    def provide(instance: object) -> Callable:  # type: ignore[type-arg]
        async def dependency() -> object:
            return instance

        return dependency

    overrides: Dict[Callable, Callable] = {  # type: ignore[type-arg]
        get_settings: provide(settings),
        get_payment_gateway: provide(gateway),
        get_address_repository: provide(MemoryAddressRepository(store)),
        get_customer_repository: provide(MemoryCustomerRepository(store)),
        get_product_repository: provide(MemoryProductRepository(store)),
        get_cart_repository: provide(MemoryCartRepository(store)),
        get_order_repository: provide(MemoryOrderRepository(store)),
        get_payment_repository: provide(MemoryPaymentRepository(store)),
        get_shipment_repository: provide(MemoryShipmentRepository(store)),
    }
    app.dependency_overrides.update(overrides)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides = {}
