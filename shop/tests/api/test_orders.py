"""
Tests for the orders, cart and payments routers.
"""

from fastapi.testclient import TestClient

from shop.domain import OrderStatus
from shop.repos.memory import MemoryPaymentGateway, MemoryStore
from shop.tests.api.conftest import CUSTOMER_HEADERS
from shop.tests.factories import OrderFactory, add_cart_line


def _checkout(client: TestClient) -> dict:  # type: ignore[type-arg]
    response = client.post(
        "/orders", json={"address_id": "addr-1"}, headers=CUSTOMER_HEADERS
    )
    assert response.status_code == 201
    return response.json()["data"]["order"]  # type: ignore[no-any-return]


class TestAuthentication:
    def test_missing_identity_is_unauthenticated(
        self, client: TestClient
    ) -> None:
        response = client.get("/orders")

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "message": "Authentication required",
        }


class TestCreateOrder:
    def test_checkout_from_cart(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        added = client.post(
            "/cart/items",
            json={"product_id": "prod-1", "quantity": 2},
            headers=CUSTOMER_HEADERS,
        )
        assert added.status_code == 201
        assert added.json()["message"] == "Product added to cart"

        response = client.post(
            "/orders",
            json={"address_id": "addr-1", "shipping_method": "JNE REG"},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Order created successfully"
        order = body["data"]["order"]
        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["total_amount"] == "100000.00"
        assert store.products["prod-1"].stock_quantity == 8

    def test_empty_cart(self, client: TestClient) -> None:
        response = client.post(
            "/orders", json={"address_id": "addr-1"}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Cart is empty"

    def test_insufficient_stock(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-2", 6)

        response = client.post(
            "/orders", json={"address_id": "addr-1"}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["message"] == (
            "Insufficient stock for product Teh. Available: 5"
        )

    def test_request_validation_lists_fields(
        self, client: TestClient
    ) -> None:
        response = client.post("/orders", json={}, headers=CUSTOMER_HEADERS)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert body["errors"][0]["field"] == "address_id"

    def test_unknown_address(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 1)

        response = client.post(
            "/orders", json={"address_id": "nope"}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Address not found"


class TestReadOrders:
    def test_list_is_paginated_and_scoped(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        for order in (
            OrderFactory(),
            OrderFactory(),
            OrderFactory(user_id="user-2"),
        ):
            store.orders[order.order_id] = order

        response = client.get(
            "/orders", params={"size": 1}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 200
        page = response.json()["data"]
        assert page["total"] == 2
        assert len(page["items"]) == 1
        assert page["pages"] == 2

    def test_list_filters_by_status(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        confirmed = OrderFactory(status=OrderStatus.CONFIRMED)
        store.orders[confirmed.order_id] = confirmed
        pending = OrderFactory()
        store.orders[pending.order_id] = pending

        response = client.get(
            "/orders",
            params={"status": "confirmed"},
            headers=CUSTOMER_HEADERS,
        )

        items = response.json()["data"]["items"]
        assert [item["order_id"] for item in items] == [confirmed.order_id]

    def test_get_order_without_payment(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        order = OrderFactory()
        store.orders[order.order_id] = order

        response = client.get(
            f"/orders/{order.order_id}", headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["order"]["order_id"] == order.order_id
        assert data["payment"] is None

    def test_other_users_order_is_not_found(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        order = OrderFactory(user_id="user-2")
        store.orders[order.order_id] = order

        response = client.get(
            f"/orders/{order.order_id}", headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Order not found"


class TestPayments:
    def test_create_payment_then_read_it(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 1)
        order = _checkout(client)

        created = client.post(
            "/payments",
            json={"order_id": order["order_id"]},
            headers=CUSTOMER_HEADERS,
        )

        assert created.status_code == 201
        body = created.json()
        assert body["message"] == "Payment created successfully"
        assert body["data"]["token"]
        payment = body["data"]["payment"]
        assert payment["status"] == "pending"
        assert payment["gateway_order_id"] == order["order_number"]

        detail = client.get(
            f"/orders/{order['order_id']}", headers=CUSTOMER_HEADERS
        ).json()["data"]
        assert detail["payment"]["payment_id"] == payment["payment_id"]

        by_order = client.get(
            f"/orders/{order['order_id']}/payment", headers=CUSTOMER_HEADERS
        )
        assert by_order.json()["data"]["payment"]["payment_id"] == (
            payment["payment_id"]
        )

        by_id = client.get(
            f"/payments/{payment['payment_id']}", headers=CUSTOMER_HEADERS
        )
        assert by_id.status_code == 200

    def test_second_payment_conflicts(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 1)
        order = _checkout(client)
        payload = {"order_id": order["order_id"]}
        client.post("/payments", json=payload, headers=CUSTOMER_HEADERS)

        response = client.post(
            "/payments", json=payload, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 409
        assert response.json()["message"] == (
            "Payment already exists for this order"
        )

    def test_gateway_failure(
        self,
        client: TestClient,
        store: MemoryStore,
        gateway: MemoryPaymentGateway,
    ) -> None:
        add_cart_line(store, "prod-1", 1)
        order = _checkout(client)
        gateway.fail_create_with = "Access denied"

        response = client.post(
            "/payments",
            json={"order_id": order["order_id"]},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "Failed to create payment transaction"
        assert "error" not in body
        assert store.payments == {}


class TestCancelOrder:
    def test_cancel_releases_stock(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 4)
        order = _checkout(client)
        assert store.products["prod-1"].stock_quantity == 6

        response = client.put(
            f"/orders/{order['order_id']}/cancel", headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Order cancelled successfully"
        assert body["data"]["order"]["status"] == "cancelled"
        assert body["data"]["order"]["payment_status"] == "failed"
        assert store.products["prod-1"].stock_quantity == 10

    def test_cancel_shipped_order_is_rejected(
        self, client: TestClient, store: MemoryStore
    ) -> None:
        order = OrderFactory(status=OrderStatus.SHIPPED)
        store.orders[order.order_id] = order

        response = client.put(
            f"/orders/{order.order_id}/cancel", headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["message"] == (
            "Cannot cancel order with status: shipped"
        )
