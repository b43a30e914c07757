"""
PostgreSQL repository implementations backed by asyncpg.
"""

from .cart import PostgreSQLCartRepository
from .catalog import (
    PostgreSQLAddressRepository,
    PostgreSQLCustomerRepository,
    PostgreSQLProductRepository,
)
from .connection import apply_schema, create_pool
from .order import PostgreSQLOrderRepository
from .payment import PostgreSQLPaymentRepository
from .shipment import PostgreSQLShipmentRepository

__all__ = [
    "PostgreSQLAddressRepository",
    "PostgreSQLCartRepository",
    "PostgreSQLCustomerRepository",
    "PostgreSQLOrderRepository",
    "PostgreSQLPaymentRepository",
    "PostgreSQLProductRepository",
    "PostgreSQLShipmentRepository",
    "apply_schema",
    "create_pool",
]
