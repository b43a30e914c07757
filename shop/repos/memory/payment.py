"""
Memory implementation of PaymentRepository.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from shop.domain import (
    OrderStatus,
    Payment,
    PaymentNotification,
    PaymentStatus,
    ReconciliationResult,
)
from shop.exceptions import (
    ConflictError,
    InternalError,
    PaymentAlreadyExistsError,
)
from shop.repositories import PaymentRepository, Reconciler

from .store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryPaymentRepository(PaymentRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        logger.debug("Initializing MemoryPaymentRepository")

    async def generate_payment_id(self) -> str:
        return str(uuid.uuid4())

    async def create_payment(self, payment: Payment) -> Payment:
        async with self.store.transaction() as store:
            for existing in store.payments.values():
                if existing.deleted_at is not None:
                    continue
                if existing.order_id == payment.order_id:
                    raise PaymentAlreadyExistsError(payment.order_id)
                if (
                    payment.gateway_order_id
                    and existing.gateway_order_id == payment.gateway_order_id
                ):
                    raise ConflictError("Gateway order id already in use")
            store.payments[payment.payment_id] = payment.model_copy(
                deep=True
            )

        logger.info(
            "Payment created",
            extra={
                "payment_id": payment.payment_id,
                "order_id": payment.order_id,
                "amount": str(payment.amount),
            },
        )
        return payment.model_copy(deep=True)

    def _find(self, predicate: Callable[[Payment], bool]) -> Optional[Payment]:
        return next(
            (
                payment
                for payment in self.store.payments.values()
                if payment.deleted_at is None and predicate(payment)
            ),
            None,
        )

    async def get_payment(
        self, payment_id: str, user_id: Optional[str] = None
    ) -> Optional[Payment]:
        payment = self._find(
            lambda p: p.payment_id == payment_id
            and (user_id is None or p.user_id == user_id)
        )
        return payment.model_copy(deep=True) if payment else None

    async def get_payment_for_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Optional[Payment]:
        payment = self._find(
            lambda p: p.order_id == order_id
            and (user_id is None or p.user_id == user_id)
        )
        return payment.model_copy(deep=True) if payment else None

    def _resolve(self, notification: PaymentNotification) -> Optional[Payment]:
        payment = self._find(lambda p: p.order_id == notification.order_id)
        if payment is None:
            payment = self._find(
                lambda p: p.gateway_order_id == notification.order_id
            )
        if payment is None and notification.transaction_id:
            payment = self._find(
                lambda p: p.transaction_id == notification.transaction_id
            )
        return payment

    async def apply_notification(
        self, notification: PaymentNotification, reconcile: Reconciler
    ) -> Optional[ReconciliationResult]:
        async with self.store.transaction() as store:
            payment = self._resolve(notification)
            if payment is None:
                return None

            order = store.orders.get(payment.order_id)
            if order is None:
                logger.error(
                    "Payment references a missing order",
                    extra={
                        "payment_id": payment.payment_id,
                        "order_id": payment.order_id,
                    },
                )
                raise InternalError("Payment references a missing order")

            result = reconcile(
                payment.model_copy(deep=True), order.model_copy(deep=True)
            )
            store.payments[payment.payment_id] = result.payment.model_copy(
                deep=True
            )
            store.orders[order.order_id] = result.order.model_copy(deep=True)

        return result

    def _order_cancelled(self, order_id: str) -> bool:
        order = self.store.orders.get(order_id)
        return order is not None and order.status == OrderStatus.CANCELLED

    async def list_stale_pending(
        self, older_than: datetime, limit: int
    ) -> List[Payment]:
        stale = [
            payment.model_copy(deep=True)
            for payment in self.store.payments.values()
            if payment.deleted_at is None
            and payment.status == PaymentStatus.PENDING
            and payment.created_at is not None
            and payment.created_at < older_than
            and not self._order_cancelled(payment.order_id)
        ]
        stale.sort(key=lambda payment: payment.created_at.timestamp())
        return stale[:limit]
