"""
PostgreSQL implementation of CartRepository.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from asyncpg import Pool, Record

from shop.domain import CartLine, Product
from shop.exceptions import NotFoundError
from shop.repositories import CartRepository

logger = logging.getLogger(__name__)

_LINE_SELECT = """
    SELECT c.cart_line_id, c.user_id, c.product_id, c.quantity,
           c.created_at, c.updated_at,
           p.name AS p_name, p.sku AS p_sku, p.price AS p_price,
           p.stock_quantity AS p_stock_quantity,
           p.is_active AS p_is_active, p.deleted_at AS p_deleted_at
    FROM cart_items c
    LEFT JOIN products p ON p.product_id = c.product_id
"""


def _row_to_line(row: Record) -> CartLine:
    product = None
    if row["p_name"] is not None and row["p_deleted_at"] is None:
        product = Product(
            product_id=row["product_id"],
            name=row["p_name"],
            sku=row["p_sku"],
            price=row["p_price"],
            stock_quantity=row["p_stock_quantity"],
            is_active=row["p_is_active"],
        )
    return CartLine(
        cart_line_id=row["cart_line_id"],
        user_id=row["user_id"],
        product_id=row["product_id"],
        quantity=row["quantity"],
        product=product,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgreSQLCartRepository(CartRepository):
    """
    PostgreSQL implementation of CartRepository.
    Cart lines are soft-deleted when consumed by an order.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLCartRepository")

    async def get_lines(
        self, user_id: str, cart_line_ids: Optional[Sequence[str]] = None
    ) -> List[CartLine]:
        async with self.pool.acquire() as conn:
            if cart_line_ids is None:
                rows = await conn.fetch(
                    _LINE_SELECT
                    + """
                    WHERE c.user_id = $1 AND c.deleted_at IS NULL
                    ORDER BY c.created_at
                    """,
                    user_id,
                )
            else:
                rows = await conn.fetch(
                    _LINE_SELECT
                    + """
                    WHERE c.user_id = $1
                      AND c.cart_line_id = ANY($2::text[])
                      AND c.deleted_at IS NULL
                    ORDER BY c.created_at
                    """,
                    user_id,
                    list(cart_line_ids),
                )
        return [_row_to_line(row) for row in rows]

    async def add_line(
        self, user_id: str, product_id: str, quantity: int
    ) -> CartLine:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    """
                    SELECT 1 FROM products
                    WHERE product_id = $1 AND deleted_at IS NULL
                    """,
                    product_id,
                )
                if not exists:
                    raise NotFoundError("Product not found")

                cart_line_id = await conn.fetchval(
                    """
                    INSERT INTO cart_items (
                        cart_line_id, user_id, product_id, quantity
                    ) VALUES ($1, $2, $3, $4)
                    ON CONFLICT (user_id, product_id)
                        WHERE deleted_at IS NULL
                    DO UPDATE SET
                        quantity = cart_items.quantity + EXCLUDED.quantity,
                        updated_at = now()
                    RETURNING cart_line_id
                    """,
                    str(uuid.uuid4()),
                    user_id,
                    product_id,
                    quantity,
                )
                row = await conn.fetchrow(
                    _LINE_SELECT + " WHERE c.cart_line_id = $1",
                    cart_line_id,
                )

        logger.info(
            "Saved cart line to PostgreSQL",
            extra={
                "user_id": user_id,
                "product_id": product_id,
                "quantity": row["quantity"],
            },
        )
        return _row_to_line(row)
