"""
Temporal workflows for the shop.

Workflows orchestrate activities in a deterministic manner; every gateway
and database call happens inside an activity.
"""

import logging
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

from .domain import ResyncReport

logger = logging.getLogger(__name__)


@workflow.defn
class PaymentResyncWorkflow:
    """
    Workflow re-querying the gateway for payments stuck in pending.

    Started by a Temporal schedule (see shop/cli/resync_schedule.py). Each
    candidate is synced in its own activity so one failing payment does not
    stop the rest of the batch.
    """

    @workflow.run
    async def run(
        self, older_than_minutes: int = 30, batch_size: int = 50
    ) -> ResyncReport:
        """
        Executes one resync pass.

        Args:
            older_than_minutes: Only payments pending for longer are synced
            batch_size: Maximum number of payments synced in this pass

        Returns:
            Count of candidates and of each reconciliation outcome
        """
        logger.info(
            "Starting PaymentResyncWorkflow",
            extra={
                "older_than_minutes": older_than_minutes,
                "batch_size": batch_size,
            },
        )

        order_ids = await workflow.execute_activity(
            "shop.payment_resync.list_resync_candidates",
            args=[older_than_minutes, batch_size],
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=RetryPolicy(maximum_attempts=3),
        )

        report = ResyncReport(candidates=len(order_ids))
        for order_id in order_ids:
            outcome = await workflow.execute_activity(
                "shop.payment_resync.resync_payment",
                args=[order_id],
                start_to_close_timeout=timedelta(seconds=30),
                retry_policy=RetryPolicy(maximum_attempts=3),
            )
            report.record(outcome)

        logger.info(
            "PaymentResyncWorkflow completed",
            extra=report.model_dump(),
        )
        return report
