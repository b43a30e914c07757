"""
PostgreSQL implementation of OrderRepository.
"""

import logging
import random
import time
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from asyncpg import Connection, Pool, Record

from shop.domain import (
    Order,
    OrderLineItem,
    OrderPaymentStatus,
    OrderStatus,
    format_order_number,
    order_matches_cart,
    utc_now,
)
from shop.exceptions import (
    CartChangedError,
    InsufficientStockError,
    InvalidStateError,
    OrderNumberTakenError,
    ProductUnavailableError,
)
from shop.repositories import OrderRepository

logger = logging.getLogger(__name__)

ORDER_COLUMNS = """
    order_id, order_number, user_id, address_id, subtotal, shipping_cost,
    tax_amount, discount_amount, total_amount, status, payment_status,
    shipping_method, notes, ordered_at, delivered_at, created_at, updated_at
"""


async def fetch_items(
    conn: Connection, order_ids: Sequence[str]
) -> Dict[str, List[OrderLineItem]]:
    rows = await conn.fetch(
        """
        SELECT order_id, product_id, product_name, product_sku,
               unit_price, quantity, total_price
        FROM order_items
        WHERE order_id = ANY($1::text[])
        ORDER BY order_id, position
        """,
        list(order_ids),
    )
    items: Dict[str, List[OrderLineItem]] = {}
    for row in rows:
        data = dict(row)
        order_id = data.pop("order_id")
        items.setdefault(order_id, []).append(OrderLineItem(**data))
    return items


def row_to_order(row: Record, items: List[OrderLineItem]) -> Order:
    return Order(items=items, **dict(row))


async def fetch_order(
    conn: Connection, order_id: str, for_update: bool = False
) -> Optional[Order]:
    """Load one order with its items, optionally locking the header row."""
    query = f"""
        SELECT {ORDER_COLUMNS}
        FROM orders
        WHERE order_id = $1 AND deleted_at IS NULL
    """
    if for_update:
        query += " FOR UPDATE"
    row = await conn.fetchrow(query, order_id)
    if row is None:
        return None
    items = await fetch_items(conn, [order_id])
    return row_to_order(row, items.get(order_id, []))


class PostgreSQLOrderRepository(OrderRepository):
    """
    PostgreSQL implementation of OrderRepository.
    Stock is reserved with a guarded decrement inside the same transaction
    that inserts the order.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLOrderRepository")

    async def generate_order_id(self) -> str:
        return str(uuid.uuid4())

    async def generate_order_number(self) -> str:
        return format_order_number(
            time.time_ns() // 1_000_000, random.randint(0, 999)
        )

    async def place_order(
        self, order: Order, cart_line_ids: Sequence[str]
    ) -> Order:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                inserted = await conn.fetchval(
                    f"""
                    INSERT INTO orders ({ORDER_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11,
                            $12, $13, $14, $15, $16, $17)
                    ON CONFLICT (order_number) DO NOTHING
                    RETURNING order_id
                    """,
                    order.order_id,
                    order.order_number,
                    order.user_id,
                    order.address_id,
                    order.subtotal,
                    order.shipping_cost,
                    order.tax_amount,
                    order.discount_amount,
                    order.total_amount,
                    order.status.value,
                    order.payment_status.value,
                    order.shipping_method,
                    order.notes,
                    order.ordered_at,
                    order.delivered_at,
                    order.created_at,
                    order.updated_at,
                )
                if inserted is None:
                    raise OrderNumberTakenError(order.order_number)

                await conn.executemany(
                    """
                    INSERT INTO order_items (
                        order_id, position, product_id, product_name,
                        product_sku, unit_price, quantity, total_price
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    [
                        (
                            order.order_id,
                            position,
                            item.product_id,
                            item.product_name,
                            item.product_sku,
                            item.unit_price,
                            item.quantity,
                            item.total_price,
                        )
                        for position, item in enumerate(order.items)
                    ],
                )

                await self._consume_cart_lines(conn, order, cart_line_ids)

                # Lock products in a stable order so concurrent checkouts
                # cannot deadlock on each other.
                for item in sorted(order.items, key=lambda i: i.product_id):
                    await self._reserve_stock(conn, item)

        logger.info(
            "Saved order to PostgreSQL",
            extra={
                "order_id": order.order_id,
                "order_number": order.order_number,
                "item_count": len(order.items),
                "total_amount": str(order.total_amount),
            },
        )
        return order

    async def _consume_cart_lines(
        self, conn: Connection, order: Order, cart_line_ids: Sequence[str]
    ) -> None:
        if not cart_line_ids:
            return
        consumed = await conn.fetch(
            """
            UPDATE cart_items
            SET deleted_at = $3
            WHERE user_id = $1
              AND cart_line_id = ANY($2::text[])
              AND deleted_at IS NULL
            RETURNING product_id, quantity
            """,
            order.user_id,
            list(cart_line_ids),
            order.created_at or utc_now(),
        )
        # Lines consumed by a concurrent checkout or edited since the order
        # was built roll the whole order back.
        if len(consumed) != len(cart_line_ids) or not order_matches_cart(
            order, [(row["product_id"], row["quantity"]) for row in consumed]
        ):
            raise CartChangedError()

    async def _reserve_stock(
        self, conn: Connection, item: OrderLineItem
    ) -> None:
        reserved = await conn.fetchval(
            """
            UPDATE products
            SET stock_quantity = stock_quantity - $2, updated_at = now()
            WHERE product_id = $1
              AND is_active
              AND deleted_at IS NULL
              AND stock_quantity >= $2
            RETURNING stock_quantity
            """,
            item.product_id,
            item.quantity,
        )
        if reserved is not None:
            return

        product = await conn.fetchrow(
            """
            SELECT name, stock_quantity, is_active, deleted_at
            FROM products
            WHERE product_id = $1
            """,
            item.product_id,
        )
        if (
            product is None
            or not product["is_active"]
            or product["deleted_at"] is not None
        ):
            raise ProductUnavailableError(item.product_name)
        raise InsufficientStockError(
            product["name"], product["stock_quantity"]
        )

    async def get_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Optional[Order]:
        async with self.pool.acquire() as conn:
            order = await fetch_order(conn, order_id)
        if order is None:
            return None
        if user_id is not None and order.user_id != user_id:
            return None
        return order

    async def list_orders(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[OrderPaymentStatus] = None,
    ) -> List[Order]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {ORDER_COLUMNS}
                FROM orders
                WHERE user_id = $1
                  AND deleted_at IS NULL
                  AND ($2::text IS NULL OR status = $2)
                  AND ($3::text IS NULL OR payment_status = $3)
                ORDER BY ordered_at DESC
                """,
                user_id,
                status.value if status else None,
                payment_status.value if payment_status else None,
            )
            items = await fetch_items(conn, [row["order_id"] for row in rows])

        return [
            row_to_order(row, items.get(row["order_id"], [])) for row in rows
        ]

    async def cancel_order(
        self,
        order_id: str,
        user_id: str,
        allowed_statuses: Sequence[OrderStatus],
        cancelled_at: datetime,
    ) -> Optional[Order]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await fetch_order(conn, order_id, for_update=True)
                if order is None or order.user_id != user_id:
                    return None
                if order.status not in allowed_statuses:
                    raise InvalidStateError(
                        "Cannot cancel order with status: "
                        f"{order.status.value}"
                    )

                await conn.execute(
                    """
                    UPDATE orders
                    SET status = $2,
                        payment_status = CASE
                            WHEN payment_status = $3::text THEN $4::text
                            ELSE payment_status
                        END,
                        updated_at = $5
                    WHERE order_id = $1
                    """,
                    order_id,
                    OrderStatus.CANCELLED.value,
                    OrderPaymentStatus.PENDING.value,
                    OrderPaymentStatus.FAILED.value,
                    cancelled_at,
                )

                for item in sorted(order.items, key=lambda i: i.product_id):
                    restored = await conn.fetchval(
                        """
                        UPDATE products
                        SET stock_quantity = stock_quantity + $2,
                            updated_at = now()
                        WHERE product_id = $1
                        RETURNING stock_quantity
                        """,
                        item.product_id,
                        item.quantity,
                    )
                    if restored is None:
                        logger.warning(
                            "Product missing while restoring stock",
                            extra={
                                "order_id": order_id,
                                "product_id": item.product_id,
                            },
                        )

        order.status = OrderStatus.CANCELLED
        if order.payment_status == OrderPaymentStatus.PENDING:
            order.payment_status = OrderPaymentStatus.FAILED
        order.updated_at = cancelled_at

        logger.info(
            "Cancelled order in PostgreSQL",
            extra={"order_id": order_id, "item_count": len(order.items)},
        )
        return order
