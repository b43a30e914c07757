"""
Activities for the periodic payment resync.

Activities wrap the gateway and database calls, which are non-deterministic
and must not run inside workflow code. They delegate to PaymentSyncUseCase
so that a scheduled resync behaves exactly like the admin sync endpoint.
"""

import logging
from typing import List

from temporalio import activity

from .usecase import PaymentSyncUseCase

logger = logging.getLogger(__name__)


class PaymentResyncActivities:
    """
    Activities backing PaymentResyncWorkflow.

    This class is instantiated on the worker with a fully wired use case and
    its methods are registered as activities.
    """

    def __init__(self, sync_use_case: PaymentSyncUseCase):
        self._sync_use_case = sync_use_case

    @activity.defn(name="shop.payment_resync.list_resync_candidates")
    async def list_resync_candidates(
        self, older_than_minutes: int, batch_size: int
    ) -> List[str]:
        """
        Find orders whose payment is still pending past the threshold.

        Args:
            older_than_minutes: Minimum age of the payment record
            batch_size: Maximum number of order IDs returned

        Returns:
            Order IDs, oldest payment first
        """
        order_ids = await self._sync_use_case.list_resync_candidates(
            older_than_minutes, batch_size
        )
        logger.info(
            "Resync candidates found",
            extra={
                "older_than_minutes": older_than_minutes,
                "batch_size": batch_size,
                "count": len(order_ids),
            },
        )
        return order_ids

    @activity.defn(name="shop.payment_resync.resync_payment")
    async def resync_payment(self, order_id: str) -> str:
        """Sync one order's payment; returns the reconciliation outcome or
        ``failed``."""
        outcome = await self._sync_use_case.resync_order_payment(order_id)
        logger.info(
            "Payment resynced",
            extra={"order_id": order_id, "outcome": outcome},
        )
        return outcome
