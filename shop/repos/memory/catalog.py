"""
Memory implementations of the read-only catalog repositories: products,
addresses and customers.
"""

import logging
from typing import Optional

from shop.domain import Address, Customer, Product
from shop.repositories import (
    AddressRepository,
    CustomerRepository,
    ProductRepository,
)

from .store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryProductRepository(ProductRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_product(self, product_id: str) -> Optional[Product]:
        product = self.store.products.get(product_id)
        if product is None or product.deleted_at is not None:
            logger.debug(
                "MemoryProductRepository: Product not found",
                extra={"product_id": product_id},
            )
            return None
        return product.model_copy(deep=True)


class MemoryAddressRepository(AddressRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_active_address(
        self, address_id: str, user_id: str
    ) -> Optional[Address]:
        address = self.store.addresses.get(address_id)
        if (
            address is None
            or address.user_id != user_id
            or not address.is_active
            or address.deleted_at is not None
        ):
            return None
        return address.model_copy(deep=True)


class MemoryCustomerRepository(CustomerRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_customer(self, user_id: str) -> Optional[Customer]:
        customer = self.store.customers.get(user_id)
        return customer.model_copy(deep=True) if customer else None
