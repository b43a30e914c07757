from typing import Any, Dict, List

import pytest
from unittest.mock import patch

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
from shop.tests.factories import (
    AddressFactory,
    CustomerFactory,
    ProductFactory,
)
from shop.usecase import NotificationReconcilerUseCase


@pytest.fixture
def store() -> MemoryStore:
    """Store seeded with one customer, one address and two products."""
    store = MemoryStore()
    store.add_customer(CustomerFactory(user_id="user-1"))
    store.add_address(AddressFactory(address_id="addr-1", user_id="user-1"))
    store.add_product(
        ProductFactory(product_id="prod-1", name="Kopi", stock_quantity=10)
    )
    store.add_product(
        ProductFactory(
            product_id="prod-2",
            name="Teh",
            price="25000.00",
            stock_quantity=5,
        )
    )
    return store


@pytest.fixture
def address_repo(store: MemoryStore) -> MemoryAddressRepository:
    return MemoryAddressRepository(store)


@pytest.fixture
def customer_repo(store: MemoryStore) -> MemoryCustomerRepository:
    return MemoryCustomerRepository(store)


@pytest.fixture
def product_repo(store: MemoryStore) -> MemoryProductRepository:
    return MemoryProductRepository(store)


@pytest.fixture
def cart_repo(store: MemoryStore) -> MemoryCartRepository:
    return MemoryCartRepository(store)


@pytest.fixture
def order_repo(store: MemoryStore) -> MemoryOrderRepository:
    return MemoryOrderRepository(store)


@pytest.fixture
def payment_repo(store: MemoryStore) -> MemoryPaymentRepository:
    return MemoryPaymentRepository(store)


@pytest.fixture
def shipment_repo(store: MemoryStore) -> MemoryShipmentRepository:
    return MemoryShipmentRepository(store)


@pytest.fixture
def gateway() -> MemoryPaymentGateway:
    return MemoryPaymentGateway()


@pytest.fixture
def reconciler(
    payment_repo: MemoryPaymentRepository, gateway: MemoryPaymentGateway
) -> NotificationReconcilerUseCase:
    return NotificationReconcilerUseCase(
        payment_repo=payment_repo, gateway=gateway
    )


@pytest.fixture
def mock_workflow_activities() -> Dict[str, Any]:
    """Provide utilities for mocking workflow activities in unit tests."""

    def patch_execute_activity(activity_responses: List[Any]) -> Any:
        """
        Patch workflow.execute_activity with a sequence of responses.

        Args:
            activity_responses: List of return values for activities in call
                order
        """
        return patch(
            "temporalio.workflow.execute_activity",
            side_effect=activity_responses,
        )

    return {"patch_execute_activity": patch_execute_activity}
