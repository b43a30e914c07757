"""
Memory implementation of CartRepository.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from shop.domain import CartLine, utc_now
from shop.exceptions import NotFoundError
from shop.repositories import CartRepository

from .store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryCartRepository(CartRepository):
    """Cart lines stored in the shared MemoryStore, keyed by line ID."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        logger.debug("Initializing MemoryCartRepository")

    def _with_product(self, line: CartLine) -> CartLine:
        product = self.store.products.get(line.product_id)
        if product is not None and product.deleted_at is not None:
            product = None
        return line.model_copy(
            update={
                "product": (
                    product.model_copy(deep=True) if product else None
                )
            },
            deep=True,
        )

    async def get_lines(
        self, user_id: str, cart_line_ids: Optional[Sequence[str]] = None
    ) -> List[CartLine]:
        wanted = set(cart_line_ids) if cart_line_ids is not None else None
        lines = [
            self._with_product(line)
            for line in self.store.cart_lines.values()
            if line.user_id == user_id
            and (wanted is None or line.cart_line_id in wanted)
        ]
        lines.sort(
            key=lambda line: (
                line.created_at.timestamp() if line.created_at else 0.0
            )
        )
        return lines

    async def add_line(
        self, user_id: str, product_id: str, quantity: int
    ) -> CartLine:
        async with self.store.transaction() as store:
            if product_id not in store.products:
                raise NotFoundError("Product not found")

            now = utc_now()
            existing = next(
                (
                    line
                    for line in store.cart_lines.values()
                    if line.user_id == user_id
                    and line.product_id == product_id
                ),
                None,
            )
            if existing is not None:
                existing.quantity += quantity
                existing.updated_at = now
                line = existing
            else:
                line = CartLine(
                    cart_line_id=str(uuid.uuid4()),
                    user_id=user_id,
                    product_id=product_id,
                    quantity=quantity,
                    created_at=now,
                    updated_at=now,
                )
                store.cart_lines[line.cart_line_id] = line

        logger.info(
            "Cart line saved",
            extra={
                "user_id": user_id,
                "product_id": product_id,
                "quantity": line.quantity,
            },
        )
        return self._with_product(line)
