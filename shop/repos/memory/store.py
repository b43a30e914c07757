"""
Shared in-memory store backing the memory repositories.

All memory repositories built on the same MemoryStore see the same data, the
way repositories built on one database do. ``transaction()`` serializes
writers with an asyncio.Lock and restores a snapshot of every table when the
block raises, giving the all-or-nothing behaviour the repository protocols
require.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from shop.domain import (
    Address,
    CartLine,
    Customer,
    Order,
    Payment,
    Product,
    Shipment,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """Dictionaries keyed by entity ID, one per table."""

    _TABLES = (
        "products",
        "addresses",
        "customers",
        "cart_lines",
        "orders",
        "payments",
        "shipments",
    )

    def __init__(self) -> None:
        self.products: Dict[str, Product] = {}
        self.addresses: Dict[str, Address] = {}
        self.customers: Dict[str, Customer] = {}
        self.cart_lines: Dict[str, CartLine] = {}
        self.orders: Dict[str, Order] = {}
        self.payments: Dict[str, Payment] = {}
        self.shipments: Dict[str, Shipment] = {}
        self._lock = asyncio.Lock()
        logger.debug("Initializing MemoryStore")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryStore"]:
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.debug("MemoryStore: transaction rolled back")
                raise

    def _snapshot(self) -> Dict[str, Any]:
        return {
            table: copy.deepcopy(getattr(self, table))
            for table in self._TABLES
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for table, rows in snapshot.items():
            setattr(self, table, rows)

    # Seeding helpers for the tables owned by other services.

    def add_product(self, product: Product) -> Product:
        self.products[product.product_id] = product
        return product

    def add_address(self, address: Address) -> Address:
        self.addresses[address.address_id] = address
        return address

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.user_id] = customer
        return customer
