"""
PostgreSQL implementation of PaymentRepository.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from asyncpg import Connection, Pool, Record
from asyncpg.exceptions import UniqueViolationError

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

from .order import fetch_order

logger = logging.getLogger(__name__)

PAYMENT_COLUMNS = """
    payment_id, order_id, user_id, payment_method, amount, currency, status,
    transaction_id, gateway_order_id, fraud_status, payment_type,
    payment_date, expiry_time, payment_url, signature_key, raw_response,
    webhook_logs, created_at, updated_at
"""


def row_to_payment(row: Record) -> Payment:
    return Payment(**dict(row))


class PostgreSQLPaymentRepository(PaymentRepository):
    """
    PostgreSQL implementation of PaymentRepository.
    Notifications lock the payment row, then its order row, before
    reconciling, so concurrent notifications apply one after another.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLPaymentRepository")

    async def generate_payment_id(self) -> str:
        return str(uuid.uuid4())

    async def create_payment(self, payment: Payment) -> Payment:
        async with self.pool.acquire() as conn:
            try:
                await conn.execute(
                    f"""
                    INSERT INTO payments ({PAYMENT_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11,
                            $12, $13, $14, $15, $16, $17, $18, $19)
                    """,
                    payment.payment_id,
                    payment.order_id,
                    payment.user_id,
                    payment.payment_method,
                    payment.amount,
                    payment.currency,
                    payment.status.value,
                    payment.transaction_id,
                    payment.gateway_order_id,
                    (
                        payment.fraud_status.value
                        if payment.fraud_status
                        else None
                    ),
                    payment.payment_type,
                    payment.payment_date,
                    payment.expiry_time,
                    payment.payment_url,
                    payment.signature_key,
                    payment.raw_response,
                    [
                        entry.model_dump(mode="json")
                        for entry in payment.webhook_logs
                    ],
                    payment.created_at,
                    payment.updated_at,
                )
            except UniqueViolationError as e:
                if e.constraint_name == "payments_order":
                    raise PaymentAlreadyExistsError(payment.order_id) from e
                raise ConflictError("Gateway order id already in use") from e

        logger.info(
            "Saved payment to PostgreSQL",
            extra={
                "payment_id": payment.payment_id,
                "order_id": payment.order_id,
                "amount": str(payment.amount),
            },
        )
        return payment

    async def get_payment(
        self, payment_id: str, user_id: Optional[str] = None
    ) -> Optional[Payment]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {PAYMENT_COLUMNS}
                FROM payments
                WHERE payment_id = $1
                  AND ($2::text IS NULL OR user_id = $2)
                  AND deleted_at IS NULL
                """,
                payment_id,
                user_id,
            )
        return row_to_payment(row) if row else None

    async def get_payment_for_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Optional[Payment]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {PAYMENT_COLUMNS}
                FROM payments
                WHERE order_id = $1
                  AND ($2::text IS NULL OR user_id = $2)
                  AND deleted_at IS NULL
                """,
                order_id,
                user_id,
            )
        return row_to_payment(row) if row else None

    async def _lock_payment(
        self, conn: Connection, notification: PaymentNotification
    ) -> Optional[Record]:
        for column, value in (
            ("order_id", notification.order_id),
            ("gateway_order_id", notification.order_id),
            ("transaction_id", notification.transaction_id),
        ):
            if not value:
                continue
            row = await conn.fetchrow(
                f"""
                SELECT {PAYMENT_COLUMNS}
                FROM payments
                WHERE {column} = $1 AND deleted_at IS NULL
                FOR UPDATE
                """,
                value,
            )
            if row is not None:
                return row
        return None

    async def apply_notification(
        self, notification: PaymentNotification, reconcile: Reconciler
    ) -> Optional[ReconciliationResult]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await self._lock_payment(conn, notification)
                if row is None:
                    return None
                payment = row_to_payment(row)

                order = await fetch_order(
                    conn, payment.order_id, for_update=True
                )
                if order is None:
                    logger.error(
                        "Payment references a missing order",
                        extra={
                            "payment_id": payment.payment_id,
                            "order_id": payment.order_id,
                        },
                    )
                    raise InternalError("Payment references a missing order")

                result = reconcile(payment, order)
                updated = result.payment

                await conn.execute(
                    """
                    UPDATE payments
                    SET status = $2,
                        transaction_id = $3,
                        fraud_status = $4,
                        payment_type = $5,
                        payment_date = $6,
                        expiry_time = $7,
                        signature_key = $8,
                        raw_response = $9,
                        webhook_logs = $10,
                        updated_at = $11
                    WHERE payment_id = $1
                    """,
                    updated.payment_id,
                    updated.status.value,
                    updated.transaction_id,
                    (
                        updated.fraud_status.value
                        if updated.fraud_status
                        else None
                    ),
                    updated.payment_type,
                    updated.payment_date,
                    updated.expiry_time,
                    updated.signature_key,
                    updated.raw_response,
                    [
                        entry.model_dump(mode="json")
                        for entry in updated.webhook_logs
                    ],
                    updated.updated_at,
                )
                await conn.execute(
                    """
                    UPDATE orders
                    SET status = $2, payment_status = $3, updated_at = $4
                    WHERE order_id = $1
                    """,
                    result.order.order_id,
                    result.order.status.value,
                    result.order.payment_status.value,
                    result.order.updated_at,
                )

        logger.debug(
            "Saved reconciled payment to PostgreSQL",
            extra={
                "payment_id": result.payment.payment_id,
                "outcome": result.outcome,
            },
        )
        return result

    async def list_stale_pending(
        self, older_than: datetime, limit: int
    ) -> List[Payment]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {PAYMENT_COLUMNS}
                FROM payments
                WHERE status = $1
                  AND created_at < $2
                  AND deleted_at IS NULL
                  AND NOT EXISTS (
                      SELECT 1 FROM orders o
                      WHERE o.order_id = payments.order_id
                        AND o.status = $4
                  )
                ORDER BY created_at
                LIMIT $3
                """,
                PaymentStatus.PENDING.value,
                older_than,
                limit,
                OrderStatus.CANCELLED.value,
            )
        return [row_to_payment(row) for row in rows]
