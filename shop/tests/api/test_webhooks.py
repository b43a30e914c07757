"""
Tests for the gateway webhook router.
"""

from fastapi.testclient import TestClient

from shop.domain import OrderStatus, PaymentStatus
from shop.repos.memory import MemoryStore
from shop.tests.factories import add_order_with_payment

WEBHOOK_URL = "/webhooks/midtrans/notification"


def _notification(order_reference: str, status: str) -> dict:  # type: ignore[type-arg]
    return {
        "order_id": order_reference,
        "transaction_status": status,
        "transaction_id": "trx-1",
        "status_code": "200",
        "gross_amount": "100000.00",
        "fraud_status": "accept",
        "va_numbers": [{"bank": "bca", "va_number": "12345"}],
    }


class TestMidtransNotification:
    def test_settlement_is_applied(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        order, payment = seeded["order"], seeded["payment"]

        response = client.post(
            WEBHOOK_URL, json=_notification(order.order_number, "settlement")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Notification processed"
        assert body["data"]["outcome"] == "applied"
        assert body["data"]["payment_status"] == "settlement"
        assert body["data"]["order_status"] == "confirmed"
        assert body["data"]["order_payment_status"] == "paid"

        stored = store.payments[payment.payment_id]
        assert stored.status == PaymentStatus.SETTLEMENT
        assert stored.transaction_id == "trx-1"
        log = stored.webhook_logs[-1]
        assert log.source == "webhook"
        assert log.notification["va_numbers"][0]["bank"] == "bca"

    def test_duplicate_is_still_processed(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)
        payload = _notification(seeded["order"].order_number, "settlement")
        client.post(WEBHOOK_URL, json=payload)

        response = client.post(WEBHOOK_URL, json=payload)

        assert response.status_code == 200
        assert response.json()["data"]["outcome"] == "unchanged"
        payment = store.payments[seeded["payment"].payment_id]
        assert len(payment.webhook_logs) == 2

    def test_expire_cancels_order(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)

        response = client.post(
            WEBHOOK_URL,
            json=_notification(seeded["order"].order_number, "expire"),
        )

        assert response.status_code == 200
        order = store.orders[seeded["order"].order_id]
        assert order.status == OrderStatus.CANCELLED

    def test_unknown_payment(self, client: TestClient) -> None:
        response = client.post(
            WEBHOOK_URL, json=_notification("ORD-0-000", "settlement")
        )

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": "Payment not found",
        }

    def test_invalid_json(self, client: TestClient) -> None:
        response = client.post(
            WEBHOOK_URL,
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert body["errors"] == [{"field": "body", "message": "Invalid JSON"}]

    def test_body_that_is_not_utf8_is_rejected(
        self, client: TestClient
    ) -> None:
        response = client.post(
            WEBHOOK_URL,
            content=b'{"order_id": "\xff"}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert body["errors"] == [{"field": "body", "message": "Invalid JSON"}]

    def test_missing_status_is_rejected(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        seeded = add_order_with_payment(store)

        response = client.post(
            WEBHOOK_URL, json={"order_id": seeded["order"].order_number}
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "transaction_status"
        payment = store.payments[seeded["payment"].payment_id]
        assert payment.webhook_logs == []
