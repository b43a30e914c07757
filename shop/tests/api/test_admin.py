"""
Tests for the admin router.
"""

from fastapi.testclient import TestClient

from shop.domain import OrderStatus
from shop.repos.memory import MemoryPaymentGateway, MemoryStore
from shop.tests.api.conftest import ADMIN_HEADERS, CUSTOMER_HEADERS
from shop.tests.factories import (
    OrderFactory,
    PaymentNotificationFactory,
    add_order_with_payment,
)


class TestAdminAccess:
    def test_customer_is_forbidden(self, client: TestClient) -> None:
        response = client.post(
            "/admin/payments/sync/order-1", headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    def test_anonymous_is_unauthenticated(self, client: TestClient) -> None:
        response = client.post("/admin/payments/sync/order-1")

        assert response.status_code == 401


class TestPaymentSync:
    def test_gateway_status_is_applied(
        self,
        client: TestClient,
        store: MemoryStore,
        gateway: MemoryPaymentGateway,
    ) -> None:
        seeded = add_order_with_payment(store)
        order = seeded["order"]
        gateway.statuses[order.order_number] = PaymentNotificationFactory(
            order_id=order.order_number, transaction_status="settlement"
        )

        response = client.post(
            f"/admin/payments/sync/{order.order_id}", headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Payment status synchronized successfully"
        assert body["data"]["outcome"] == "applied"
        assert body["data"]["payment"]["status"] == "settlement"
        assert body["data"]["gateway_response"]["transaction_status"] == (
            "settlement"
        )
        payment = store.payments[seeded["payment"].payment_id]
        assert payment.webhook_logs[-1].source == "sync"
        assert store.orders[order.order_id].status == OrderStatus.CONFIRMED

    def test_gateway_failure(
        self,
        client: TestClient,
        store: MemoryStore,
        gateway: MemoryPaymentGateway,
    ) -> None:
        seeded = add_order_with_payment(store)
        gateway.fail_status_with = "Service unavailable"

        response = client.post(
            f"/admin/payments/sync/{seeded['order'].order_id}",
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 502
        assert response.json()["message"] == (
            "Failed to get payment status from gateway"
        )

    def test_order_without_payment(self, client: TestClient) -> None:
        response = client.post(
            "/admin/payments/sync/order-unknown", headers=ADMIN_HEADERS
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Payment not found"


class TestShipments:
    def _create(self, client: TestClient, order_id: str) -> dict:  # type: ignore[type-arg]
        response = client.post(
            "/admin/shipments",
            json={
                "order_id": order_id,
                "tracking_number": "JNE00000001",
                "carrier": "JNE",
                "service_type": "REG",
                "shipping_cost": "15000",
                "origin_address": "Warehouse Jakarta",
            },
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 201
        assert response.json()["message"] == "Shipment created successfully"
        return response.json()["data"]  # type: ignore[no-any-return]

    def test_create_then_deliver(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        order = OrderFactory(status=OrderStatus.CONFIRMED)
        store.orders[order.order_id] = order

        shipment = self._create(client, order.order_id)

        assert shipment["status"] == "pending"
        assert shipment["tracking_history"][0]["location"] == (
            "Warehouse Jakarta"
        )
        assert store.orders[order.order_id].status == OrderStatus.PROCESSING

        in_transit = client.put(
            f"/admin/shipments/{shipment['shipment_id']}/status",
            json={"status": "in_transit", "location": "Bekasi"},
            headers=ADMIN_HEADERS,
        )
        assert in_transit.status_code == 200
        assert in_transit.json()["message"] == (
            "Shipment status updated successfully"
        )
        assert store.orders[order.order_id].status == OrderStatus.SHIPPED

        delivered = client.put(
            f"/admin/shipments/{shipment['shipment_id']}/status",
            json={"status": "delivered"},
            headers=ADMIN_HEADERS,
        )
        data = delivered.json()["data"]
        assert data["status"] == "delivered"
        assert data["actual_delivery"] is not None
        assert store.orders[order.order_id].status == OrderStatus.DELIVERED

    def test_second_shipment_conflicts(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        order = OrderFactory(status=OrderStatus.CONFIRMED)
        store.orders[order.order_id] = order
        self._create(client, order.order_id)

        response = client.post(
            "/admin/shipments",
            json={
                "order_id": order.order_id,
                "tracking_number": "JNE00000002",
                "carrier": "JNE",
            },
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 409
        assert response.json()["message"] == (
            "Shipment already exists for this order"
        )

    def test_blank_carrier_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/admin/shipments",
            json={
                "order_id": "order-1",
                "tracking_number": "JNE00000003",
                "carrier": "   ",
            },
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "carrier"

    def test_unknown_status_is_rejected(self, client: TestClient) -> None:
        response = client.put(
            "/admin/shipments/ship-1/status",
            json={"status": "teleported"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "status"

    def test_unknown_shipment(self, client: TestClient) -> None:
        response = client.put(
            "/admin/shipments/ship-missing/status",
            json={"status": "pickup"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Shipment not found"
