"""
Temporal worker for the periodic payment resync.

This module sets up the Temporal worker that runs PaymentResyncWorkflow and
its activities against PostgreSQL and the Midtrans gateway.
"""

import asyncio
import logging
import os
from typing import Any, Callable, Optional, Sequence, cast

from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.service import RPCError
from temporalio.worker import Worker

from .activities import PaymentResyncActivities
from .repos.midtrans import MidtransPaymentGateway
from .repos.postgresql import PostgreSQLPaymentRepository, create_pool
from .settings import load_settings
from .usecase import NotificationReconcilerUseCase, PaymentSyncUseCase
from .workflows import PaymentResyncWorkflow

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure logging based on environment variables"""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    # Validate log level
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        print(f"Invalid log level: {log_level}, defaulting to INFO")
        numeric_level = logging.INFO

    log_format = os.environ.get(
        "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        force=True,  # Override any existing configuration
    )
    logger.info(
        "Logging configured",
        extra={"log_level": log_level, "numeric_level": numeric_level},
    )


async def get_temporal_client_with_retries(
    endpoint: str, attempts: int = 10, delay: int = 5
) -> Client:
    """Attempt to connect to Temporal with retries."""
    logger.debug(
        "Attempting to connect to Temporal",
        extra={
            "endpoint": endpoint,
            "max_attempts": attempts,
            "delay_seconds": delay,
        },
    )

    for attempt in range(attempts):
        try:
            client = await Client.connect(
                endpoint,
                namespace="default",
                data_converter=pydantic_data_converter,
            )
            logger.info(
                "Successfully connected to Temporal",
                extra={"endpoint": endpoint, "attempt": attempt + 1},
            )
            return client
        except RPCError as e:
            logger.warning(
                "Failed to connect to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "error_message": str(e),
                    "retry_in_seconds": delay,
                },
            )
            if attempt + 1 == attempts:
                logger.error(
                    "All connection attempts to Temporal failed",
                    extra={"endpoint": endpoint, "total_attempts": attempts},
                )
                raise
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected exit from retry loop")


async def run_worker(
    temporal_address: Optional[str] = None,
    task_queue: Optional[str] = None,
) -> None:
    """
    Run the Temporal worker for the payment resync.

    Args:
        temporal_address: Address of the Temporal server, defaults to
            TEMPORAL_ENDPOINT
        task_queue: Task queue to poll, defaults to RESYNC_TASK_QUEUE
    """
    setup_logging()
    settings = load_settings()

    temporal_address = temporal_address or settings.temporal_endpoint
    task_queue = task_queue or settings.resync_task_queue

    logger.info(
        "Starting payment resync worker",
        extra={
            "temporal_address": temporal_address,
            "task_queue": task_queue,
        },
    )

    client = await get_temporal_client_with_retries(temporal_address)

    # 1. Backends shared by every activity
    pool = await create_pool(
        settings.database_url,
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
    )
    gateway = MidtransPaymentGateway(
        server_key=settings.midtrans_server_key,
        sandbox=settings.midtrans_sandbox,
        timeout=settings.gateway_timeout_seconds,
    )

    # 2. Use cases, wired exactly as the admin sync endpoint wires them
    payment_repo = PostgreSQLPaymentRepository(pool)
    reconciler = NotificationReconcilerUseCase(
        payment_repo=payment_repo,
        gateway=gateway,
        verify_signature=False,
        strict=settings.strict_notification_ordering,
    )
    sync_use_case = PaymentSyncUseCase(
        payment_repo=payment_repo, gateway=gateway, reconciler=reconciler
    )

    # 3. Activities
    resync_activities = PaymentResyncActivities(sync_use_case=sync_use_case)
    activities = [
        resync_activities.list_resync_candidates,
        resync_activities.resync_payment,
    ]

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=[PaymentResyncWorkflow],
        activities=cast(Sequence[Callable[..., Any]], activities),
    )

    logger.info(
        "Starting worker execution",
        extra={"task_queue": task_queue, "activity_count": len(activities)},
    )
    try:
        await worker.run()
    finally:
        await gateway.aclose()
        await pool.close()


def main() -> None:
    """Entry point for the payment resync worker."""
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
