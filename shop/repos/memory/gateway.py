"""
In-memory PaymentGateway for tests and local runs.

Transactions are recorded in a dictionary keyed by order reference. The
status reported by ``get_status`` can be set per reference, and failures can
be switched on to exercise the dependency-failure paths.
"""

import logging
import uuid
from typing import Dict, List, Optional

from shop.domain import (
    GatewayStatusOutcome,
    GatewayTransactionOutcome,
    GatewayTransactionRequest,
    PaymentNotification,
    signature_matches,
)
from shop.repositories import PaymentGateway

logger = logging.getLogger(__name__)


class MemoryPaymentGateway(PaymentGateway):
    def __init__(self, server_key: str = "memory-server-key") -> None:
        self.server_key = server_key
        self.requests: List[GatewayTransactionRequest] = []
        self.statuses: Dict[str, PaymentNotification] = {}
        self.fail_create_with: Optional[str] = None
        self.fail_status_with: Optional[str] = None
        logger.debug("Initializing MemoryPaymentGateway")

    async def create_transaction(
        self, request: GatewayTransactionRequest
    ) -> GatewayTransactionOutcome:
        self.requests.append(request)
        if self.fail_create_with:
            return GatewayTransactionOutcome(
                status="failed", reason=self.fail_create_with
            )

        token = str(uuid.uuid4())
        redirect_url = (
            f"https://app.sandbox.midtrans.com/snap/v2/vtweb/{token}"
        )
        return GatewayTransactionOutcome(
            status="created",
            token=token,
            redirect_url=redirect_url,
            raw_response={"token": token, "redirect_url": redirect_url},
        )

    async def get_status(self, reference: str) -> GatewayStatusOutcome:
        if self.fail_status_with:
            return GatewayStatusOutcome(
                status="failed", reason=self.fail_status_with
            )
        notification = self.statuses.get(reference)
        if notification is None:
            return GatewayStatusOutcome(
                status="failed", reason="Transaction doesn't exist."
            )
        return GatewayStatusOutcome(status="found", notification=notification)

    def verify_signature(self, notification: PaymentNotification) -> bool:
        return signature_matches(notification, self.server_key)
