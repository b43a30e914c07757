"""
Tests for the health check and the application's error rendering.
"""

from typing import Any

from fastapi.testclient import TestClient

from shop.api.app import app
from shop.api.dependencies import get_checkout_use_case, get_settings
from shop.settings import ShopSettings
from shop.tests.api.conftest import CUSTOMER_HEADERS


class ExplodingCheckout:
    async def checkout(self, **kwargs: Any) -> None:
        raise RuntimeError("database exploded")


async def exploding_checkout() -> ExplodingCheckout:
    return ExplodingCheckout()


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


class TestInternalErrors:
    def test_detail_is_hidden_outside_development(
        self, client: TestClient
    ) -> None:
        app.dependency_overrides[get_checkout_use_case] = exploding_checkout

        response = client.post(
            "/orders", json={"address_id": "addr-1"}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "message": "Failed to create order",
        }

    def test_detail_is_shown_in_development(
        self, client: TestClient
    ) -> None:
        async def development_settings() -> ShopSettings:
            return ShopSettings(storage="memory", env="development")

        app.dependency_overrides[get_checkout_use_case] = exploding_checkout
        app.dependency_overrides[get_settings] = development_settings

        response = client.post(
            "/orders", json={"address_id": "addr-1"}, headers=CUSTOMER_HEADERS
        )

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "Failed to create order"
        assert body["error"] == "database exploded"

    def test_unknown_route(self, client: TestClient) -> None:
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found"}
