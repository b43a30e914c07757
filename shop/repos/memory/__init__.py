"""
Memory repository implementations for the shop domain.

All repositories share one MemoryStore so that multi-table operations can be
made atomic with ``MemoryStore.transaction()``. They are used by the test
suite and by the API when ``SHOP_STORAGE=memory``.
"""

from .cart import MemoryCartRepository
from .catalog import (
    MemoryAddressRepository,
    MemoryCustomerRepository,
    MemoryProductRepository,
)
from .gateway import MemoryPaymentGateway
from .order import MemoryOrderRepository
from .payment import MemoryPaymentRepository
from .shipment import MemoryShipmentRepository
from .store import MemoryStore

__all__ = [
    "MemoryStore",
    "MemoryAddressRepository",
    "MemoryCartRepository",
    "MemoryCustomerRepository",
    "MemoryOrderRepository",
    "MemoryPaymentGateway",
    "MemoryPaymentRepository",
    "MemoryProductRepository",
    "MemoryShipmentRepository",
]
