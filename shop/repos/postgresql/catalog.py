"""
PostgreSQL implementations of the read-only catalog repositories.
"""

import logging
from typing import Optional

from asyncpg import Pool

from shop.domain import Address, Customer, Product
from shop.repositories import (
    AddressRepository,
    CustomerRepository,
    ProductRepository,
)

logger = logging.getLogger(__name__)


class PostgreSQLProductRepository(ProductRepository):
    def __init__(self, pool: Pool):
        self.pool = pool

    async def get_product(self, product_id: str) -> Optional[Product]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT product_id, name, sku, price, stock_quantity, is_active
                FROM products
                WHERE product_id = $1 AND deleted_at IS NULL
                """,
                product_id,
            )
        return Product(**dict(row)) if row else None


class PostgreSQLAddressRepository(AddressRepository):
    def __init__(self, pool: Pool):
        self.pool = pool

    async def get_active_address(
        self, address_id: str, user_id: str
    ) -> Optional[Address]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT address_id, user_id, recipient_name, phone,
                       address_line, city, postal_code, is_active
                FROM addresses
                WHERE address_id = $1
                  AND user_id = $2
                  AND is_active
                  AND deleted_at IS NULL
                """,
                address_id,
                user_id,
            )
        return Address(**dict(row)) if row else None


class PostgreSQLCustomerRepository(CustomerRepository):
    def __init__(self, pool: Pool):
        self.pool = pool

    async def get_customer(self, user_id: str) -> Optional[Customer]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT user_id, name, email, phone
                FROM users
                WHERE user_id = $1 AND deleted_at IS NULL
                """,
                user_id,
            )
        return Customer(**dict(row)) if row else None
