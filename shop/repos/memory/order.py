"""
Memory implementation of OrderRepository.

Placing and cancelling an order run inside ``MemoryStore.transaction()`` so
that the order insert, the stock moves and the cart deletion either all
happen or none do.
"""

import logging
import random
import time
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from shop.domain import (
    Order,
    OrderPaymentStatus,
    OrderStatus,
    format_order_number,
    order_matches_cart,
)
from shop.exceptions import (
    CartChangedError,
    InsufficientStockError,
    InvalidStateError,
    OrderNumberTakenError,
    ProductUnavailableError,
)
from shop.repositories import OrderRepository

from .store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryOrderRepository(OrderRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        logger.debug("Initializing MemoryOrderRepository")

    async def generate_order_id(self) -> str:
        return str(uuid.uuid4())

    async def generate_order_number(self) -> str:
        return format_order_number(
            time.time_ns() // 1_000_000, random.randint(0, 999)
        )

    async def place_order(
        self, order: Order, cart_line_ids: Sequence[str]
    ) -> Order:
        async with self.store.transaction() as store:
            if any(
                existing.order_number == order.order_number
                for existing in store.orders.values()
            ):
                raise OrderNumberTakenError(order.order_number)

            if cart_line_ids:
                consumed = [
                    store.cart_lines.get(cart_line_id)
                    for cart_line_id in cart_line_ids
                ]
                if any(
                    line is None or line.user_id != order.user_id
                    for line in consumed
                ) or not order_matches_cart(
                    order,
                    [
                        (line.product_id, line.quantity)
                        for line in consumed
                        if line is not None
                    ],
                ):
                    raise CartChangedError()

            store.orders[order.order_id] = order.model_copy(deep=True)

            for item in order.items:
                product = store.products.get(item.product_id)
                if (
                    product is None
                    or not product.is_active
                    or product.deleted_at is not None
                ):
                    raise ProductUnavailableError(item.product_name)
                if product.stock_quantity < item.quantity:
                    raise InsufficientStockError(
                        product.name, product.stock_quantity
                    )
                product.stock_quantity -= item.quantity

            for cart_line_id in cart_line_ids:
                del store.cart_lines[cart_line_id]

        logger.info(
            "Order placed",
            extra={
                "order_id": order.order_id,
                "order_number": order.order_number,
                "item_count": len(order.items),
                "total_amount": str(order.total_amount),
            },
        )
        return order.model_copy(deep=True)

    async def get_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Optional[Order]:
        order = self.store.orders.get(order_id)
        if order is None or order.deleted_at is not None:
            return None
        if user_id is not None and order.user_id != user_id:
            return None
        return order.model_copy(deep=True)

    async def list_orders(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[OrderPaymentStatus] = None,
    ) -> List[Order]:
        orders = [
            order.model_copy(deep=True)
            for order in self.store.orders.values()
            if order.user_id == user_id
            and order.deleted_at is None
            and (status is None or order.status == status)
            and (
                payment_status is None
                or order.payment_status == payment_status
            )
        ]
        orders.sort(
            key=lambda order: (
                order.ordered_at.timestamp() if order.ordered_at else 0.0
            ),
            reverse=True,
        )
        return orders

    async def cancel_order(
        self,
        order_id: str,
        user_id: str,
        allowed_statuses: Sequence[OrderStatus],
        cancelled_at: datetime,
    ) -> Optional[Order]:
        async with self.store.transaction() as store:
            order = store.orders.get(order_id)
            if (
                order is None
                or order.deleted_at is not None
                or order.user_id != user_id
            ):
                return None
            if order.status not in allowed_statuses:
                raise InvalidStateError(
                    f"Cannot cancel order with status: {order.status.value}"
                )

            order.status = OrderStatus.CANCELLED
            if order.payment_status == OrderPaymentStatus.PENDING:
                order.payment_status = OrderPaymentStatus.FAILED
            order.updated_at = cancelled_at

            for item in order.items:
                product = store.products.get(item.product_id)
                if product is None:
                    logger.warning(
                        "Product missing while restoring stock",
                        extra={
                            "order_id": order_id,
                            "product_id": item.product_id,
                        },
                    )
                    continue
                product.stock_quantity += item.quantity

            cancelled = order.model_copy(deep=True)

        logger.info(
            "Order cancelled",
            extra={"order_id": order_id, "item_count": len(cancelled.items)},
        )
        return cancelled
