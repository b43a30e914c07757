"""
Midtrans implementation of PaymentGateway.

Transactions are created through the Snap API and their status is read
back through the Core API. Every transport or gateway error is turned into
a ``failed`` outcome carrying the gateway's message.
"""

import base64
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from shop.domain import (
    GatewayStatusOutcome,
    GatewayTransactionOutcome,
    GatewayTransactionRequest,
    PaymentNotification,
    signature_matches,
)
from shop.repositories import PaymentGateway

logger = logging.getLogger(__name__)

SNAP_SANDBOX_URL = "https://app.sandbox.midtrans.com/snap/v1/transactions"
SNAP_PRODUCTION_URL = "https://app.midtrans.com/snap/v1/transactions"
CORE_SANDBOX_URL = "https://api.sandbox.midtrans.com/v2"
CORE_PRODUCTION_URL = "https://api.midtrans.com/v2"


def _amount(value: Decimal) -> int:
    """Midtrans takes IDR amounts as whole numbers."""
    return int(value.to_integral_value())


def build_snap_payload(request: GatewayTransactionRequest) -> Dict[str, Any]:
    customer = request.customer
    return {
        "transaction_details": {
            "order_id": request.order_reference,
            "gross_amount": _amount(request.gross_amount),
        },
        "customer_details": {
            "first_name": customer.first_name,
            "last_name": customer.last_name,
            "email": customer.email,
            "phone": customer.phone,
        },
        "item_details": [
            {
                "id": item.product_id,
                "price": _amount(item.unit_price),
                "quantity": item.quantity,
                "name": item.product_name,
            }
            for item in request.items
        ],
    }


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        messages = body.get("error_messages")
        if messages:
            return "; ".join(str(message) for message in messages)
        if body.get("status_message"):
            return str(body["status_message"])
    return f"HTTP {response.status_code}"


class MidtransPaymentGateway(PaymentGateway):
    """
    Midtrans Snap/Core API client.

    An ``httpx.AsyncClient`` may be passed in (tests pass one built on
    ``httpx.MockTransport``); otherwise one is created and owned here.
    """

    def __init__(
        self,
        server_key: str,
        sandbox: bool = True,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.server_key = server_key
        self.snap_url = SNAP_SANDBOX_URL if sandbox else SNAP_PRODUCTION_URL
        self.core_url = CORE_SANDBOX_URL if sandbox else CORE_PRODUCTION_URL
        token = base64.b64encode(f"{server_key}:".encode()).decode()
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Basic {token}",
        }
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        logger.debug(
            "Initialized MidtransPaymentGateway", extra={"sandbox": sandbox}
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def create_transaction(
        self, request: GatewayTransactionRequest
    ) -> GatewayTransactionOutcome:
        payload = build_snap_payload(request)
        try:
            response = await self.client.post(
                self.snap_url, json=payload, headers=self.headers
            )
        except httpx.TimeoutException:
            logger.error(
                "Midtrans Snap request timed out",
                extra={"order_reference": request.order_reference},
            )
            return GatewayTransactionOutcome(
                status="failed", reason="Payment gateway timed out"
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Midtrans Snap request failed: {e}",
                extra={"order_reference": request.order_reference},
            )
            return GatewayTransactionOutcome(status="failed", reason=str(e))

        if response.status_code >= 400:
            reason = _error_message(response)
            logger.error(
                "Midtrans Snap rejected transaction",
                extra={
                    "order_reference": request.order_reference,
                    "status_code": response.status_code,
                    "reason": reason,
                },
            )
            return GatewayTransactionOutcome(status="failed", reason=reason)

        try:
            body = response.json()
        except ValueError:
            return GatewayTransactionOutcome(
                status="failed", reason="Malformed gateway response"
            )
        if not isinstance(body, dict) or not body.get("token"):
            return GatewayTransactionOutcome(
                status="failed", reason="Gateway response has no token"
            )

        logger.info(
            "Midtrans transaction created",
            extra={"order_reference": request.order_reference},
        )
        return GatewayTransactionOutcome(
            status="created",
            token=body["token"],
            redirect_url=body.get("redirect_url"),
            raw_response=body,
        )

    async def get_status(self, reference: str) -> GatewayStatusOutcome:
        url = f"{self.core_url}/{reference}/status"
        try:
            response = await self.client.get(url, headers=self.headers)
        except httpx.TimeoutException:
            logger.error(
                "Midtrans status request timed out",
                extra={"reference": reference},
            )
            return GatewayStatusOutcome(
                status="failed", reason="Payment gateway timed out"
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Midtrans status request failed: {e}",
                extra={"reference": reference},
            )
            return GatewayStatusOutcome(status="failed", reason=str(e))

        if response.status_code >= 400:
            return GatewayStatusOutcome(
                status="failed", reason=_error_message(response)
            )
        try:
            body = response.json()
        except ValueError:
            return GatewayStatusOutcome(
                status="failed", reason="Malformed gateway response"
            )
        if not isinstance(body, dict):
            return GatewayStatusOutcome(
                status="failed", reason="Malformed gateway response"
            )

        # The Core API reports lookup errors with HTTP 200 and an error
        # status_code in the body.
        body_status = str(body.get("status_code", "200"))
        if body_status.isdigit() and int(body_status) >= 400:
            return GatewayStatusOutcome(
                status="failed",
                reason=str(body.get("status_message") or body_status),
            )

        try:
            notification = PaymentNotification.model_validate(body)
        except ValidationError as e:
            logger.error(
                "Midtrans status response is not a transaction status",
                extra={"reference": reference, "errors": e.errors()},
            )
            return GatewayStatusOutcome(
                status="failed", reason="Malformed gateway response"
            )
        return GatewayStatusOutcome(status="found", notification=notification)

    def verify_signature(self, notification: PaymentNotification) -> bool:
        return signature_matches(notification, self.server_key)
