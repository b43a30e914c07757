"""
Tests for NotificationReconcilerUseCase against the memory repositories.
"""

import asyncio

import pytest

from shop.domain import (
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    compute_notification_signature,
)
from shop.exceptions import InvalidSignatureError, PaymentNotFoundError
from shop.repos.memory import (
    MemoryPaymentGateway,
    MemoryPaymentRepository,
    MemoryStore,
)
from shop.tests.factories import (
    PaymentNotificationFactory,
    add_order_with_payment,
)
from shop.usecase import NotificationReconcilerUseCase


class TestHandleNotification:
    @pytest.mark.asyncio
    async def test_settlement_marks_order_paid(
        self, reconciler: NotificationReconcilerUseCase, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        order, payment = seeded["order"], seeded["payment"]

        result = await reconciler.handle_notification(
            PaymentNotificationFactory(
                order_id=order.order_number, transaction_status="settlement"
            )
        )

        assert result.outcome == "applied"
        stored_payment = store.payments[payment.payment_id]
        stored_order = store.orders[order.order_id]
        assert stored_payment.status == PaymentStatus.SETTLEMENT
        assert stored_payment.payment_date is not None
        assert stored_order.status == OrderStatus.CONFIRMED
        assert stored_order.payment_status == OrderPaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_payment_resolved_by_order_id(
        self, reconciler: NotificationReconcilerUseCase, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)

        result = await reconciler.handle_notification(
            PaymentNotificationFactory(
                order_id=seeded["order"].order_id,
                transaction_status="capture",
            )
        )

        assert result.payment.payment_id == seeded["payment"].payment_id
        assert result.payment.status == PaymentStatus.CAPTURE

    @pytest.mark.asyncio
    async def test_payment_resolved_by_transaction_id(
        self, reconciler: NotificationReconcilerUseCase, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        store.payments[seeded["payment"].payment_id].transaction_id = "trx-9"

        result = await reconciler.handle_notification(
            PaymentNotificationFactory(
                order_id="unrelated-reference",
                transaction_id="trx-9",
                transaction_status="deny",
            )
        )

        assert result.payment.status == PaymentStatus.DENY
        assert result.order.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_payment_is_not_found(
        self, reconciler: NotificationReconcilerUseCase
    ) -> None:
        with pytest.raises(PaymentNotFoundError) as exc_info:
            await reconciler.handle_notification(
                PaymentNotificationFactory(order_id="ORD-unknown")
            )

        assert exc_info.value.status_code == 404
        assert exc_info.value.reference == "ORD-unknown"

    @pytest.mark.asyncio
    async def test_duplicate_notification_is_logged_twice(
        self, reconciler: NotificationReconcilerUseCase, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        notification = PaymentNotificationFactory(
            order_id=seeded["order"].order_number
        )

        first = await reconciler.handle_notification(notification)
        second = await reconciler.handle_notification(notification)

        assert first.outcome == "applied"
        assert second.outcome == "unchanged"
        stored = store.payments[seeded["payment"].payment_id]
        assert len(stored.webhook_logs) == 2
        assert stored.status == PaymentStatus.SETTLEMENT

    @pytest.mark.asyncio
    async def test_concurrent_settlements_apply_once(
        self, reconciler: NotificationReconcilerUseCase, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        order = seeded["order"]

        results = await asyncio.gather(
            reconciler.handle_notification(
                PaymentNotificationFactory(
                    order_id=order.order_number, transaction_id="trx-a"
                )
            ),
            reconciler.handle_notification(
                PaymentNotificationFactory(
                    order_id=order.order_number, transaction_id="trx-b"
                )
            ),
        )

        assert sorted(r.outcome for r in results) == ["applied", "unchanged"]
        stored = store.payments[seeded["payment"].payment_id]
        assert len(stored.webhook_logs) == 2
        assert stored.status == PaymentStatus.SETTLEMENT
        assert stored.transaction_id in ("trx-a", "trx-b")
        stored_order = store.orders[order.order_id]
        assert stored_order.payment_status == OrderPaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_late_pending_after_settlement_is_ignored(
        self, reconciler: NotificationReconcilerUseCase, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        reference = seeded["order"].order_number

        await reconciler.handle_notification(
            PaymentNotificationFactory(
                order_id=reference, transaction_status="settlement"
            )
        )
        result = await reconciler.handle_notification(
            PaymentNotificationFactory(
                order_id=reference, transaction_status="pending"
            )
        )

        assert result.outcome == "ignored"
        stored_order = store.orders[seeded["order"].order_id]
        assert stored_order.payment_status == OrderPaymentStatus.PAID


class TestSignatureVerification:
    @pytest.fixture
    def verifying_reconciler(
        self,
        payment_repo: MemoryPaymentRepository,
        gateway: MemoryPaymentGateway,
    ) -> NotificationReconcilerUseCase:
        return NotificationReconcilerUseCase(
            payment_repo=payment_repo, gateway=gateway, verify_signature=True
        )

    @pytest.mark.asyncio
    async def test_bad_signature_is_rejected_before_any_write(
        self,
        verifying_reconciler: NotificationReconcilerUseCase,
        store: MemoryStore,
    ) -> None:
        seeded = add_order_with_payment(store)

        with pytest.raises(InvalidSignatureError) as exc_info:
            await verifying_reconciler.handle_notification(
                PaymentNotificationFactory(
                    order_id=seeded["order"].order_number,
                    signature_key="forged",
                )
            )

        assert exc_info.value.status_code == 400
        stored = store.payments[seeded["payment"].payment_id]
        assert stored.webhook_logs == []

    @pytest.mark.asyncio
    async def test_valid_signature_is_applied(
        self,
        verifying_reconciler: NotificationReconcilerUseCase,
        store: MemoryStore,
        gateway: MemoryPaymentGateway,
    ) -> None:
        seeded = add_order_with_payment(store)
        reference = seeded["order"].order_number
        signature = compute_notification_signature(
            reference, "200", "100000.00", gateway.server_key
        )

        result = await verifying_reconciler.handle_notification(
            PaymentNotificationFactory(
                order_id=reference,
                status_code="200",
                gross_amount="100000.00",
                signature_key=signature,
            )
        )

        assert result.outcome == "applied"
        assert result.payment.signature_key == signature

    @pytest.mark.asyncio
    async def test_sync_source_skips_signature(
        self,
        verifying_reconciler: NotificationReconcilerUseCase,
        store: MemoryStore,
    ) -> None:
        seeded = add_order_with_payment(store)

        result = await verifying_reconciler.handle_notification(
            PaymentNotificationFactory(order_id=seeded["order"].order_number),
            source="sync",
        )

        assert result.outcome == "applied"
        assert result.payment.webhook_logs[-1].source == "sync"
