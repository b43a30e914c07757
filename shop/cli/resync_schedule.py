#!/usr/bin/env python3
"""
CLI for managing the periodic payment resync via Temporal.

The resync itself runs in PaymentResyncWorkflow on the shop worker; this
script only creates, deletes and lists the Temporal schedule that starts it.
"""

import asyncio
import logging
import sys
from datetime import timedelta
from typing import Optional

import click
from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleIntervalSpec,
    ScheduleSpec,
)
from temporalio.contrib.pydantic import pydantic_data_converter

from shop.settings import load_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SCHEDULE_ID_PREFIX = "payment-resync"


async def _connect(temporal_address: str) -> Client:
    click.echo(f"Connecting to Temporal at {temporal_address}...")
    return await Client.connect(
        temporal_address, data_converter=pydantic_data_converter
    )


async def _create_schedule(
    schedule_id: str,
    interval_minutes: int,
    older_than_minutes: int,
    batch_size: int,
    temporal_address: str,
    task_queue: str,
) -> None:
    """Create a Temporal schedule for the periodic payment resync."""
    click.echo("Creating Payment Resync Schedule")
    click.echo("=" * 32)
    click.echo()

    try:
        client = await _connect(temporal_address)

        click.echo(f"Creating schedule: {schedule_id}")
        click.echo(f"Interval: {interval_minutes} minutes")
        click.echo(f"Pending for more than: {older_than_minutes} minutes")
        click.echo(f"Batch size: {batch_size}")
        click.echo()

        schedule = Schedule(
            action=ScheduleActionStartWorkflow(
                "PaymentResyncWorkflow",
                args=[older_than_minutes, batch_size],
                id=f"{schedule_id}-{{.ScheduledTime.Unix}}",
                task_queue=task_queue,
            ),
            spec=ScheduleSpec(
                intervals=[
                    ScheduleIntervalSpec(
                        every=timedelta(minutes=interval_minutes)
                    )
                ]
            ),
        )

        await client.create_schedule(schedule_id, schedule)

        click.echo("Schedule created successfully!")
        click.echo(f"Schedule ID: {schedule_id}")
        click.echo(f"Resync will run every {interval_minutes} minutes")

    except Exception as e:
        logger.error(f"Schedule creation failed: {str(e)}", exc_info=True)
        click.echo(f"Schedule creation failed: {str(e)}", err=True)
        sys.exit(1)


async def _delete_schedule(schedule_id: str, temporal_address: str) -> None:
    """Delete the payment resync schedule."""
    click.echo("Deleting Payment Resync Schedule")
    click.echo("=" * 32)
    click.echo()

    try:
        client = await _connect(temporal_address)

        click.echo(f"Deleting schedule: {schedule_id}")
        schedule_handle = client.get_schedule_handle(schedule_id)
        await schedule_handle.delete()

        click.echo("Schedule deleted successfully!")

    except Exception as e:
        logger.error(f"Schedule deletion failed: {str(e)}", exc_info=True)
        click.echo(f"Schedule deletion failed: {str(e)}", err=True)
        sys.exit(1)


async def _list_schedules(temporal_address: str) -> None:
    """List payment resync schedules."""
    click.echo("Payment Resync Schedules")
    click.echo("=" * 24)
    click.echo()

    try:
        client = await _connect(temporal_address)

        schedules = []
        schedule_list = await client.list_schedules()
        async for schedule in schedule_list:
            if schedule.id.startswith(SCHEDULE_ID_PREFIX):
                schedules.append(schedule)

        if not schedules:
            click.echo("No payment resync schedules found.")
            return

        for schedule in schedules:
            click.echo(f"Schedule ID: {schedule.id}")

    except Exception as e:
        logger.error(f"Schedule listing failed: {str(e)}", exc_info=True)
        click.echo(f"Schedule listing failed: {str(e)}", err=True)
        sys.exit(1)


def _resolve_address(temporal_address: Optional[str]) -> str:
    return temporal_address or load_settings().temporal_endpoint


@click.group()
def cli() -> None:
    """Manage the periodic payment resync via Temporal."""
    pass


@cli.command()
@click.option(
    "--schedule-id",
    default=SCHEDULE_ID_PREFIX,
    help="Temporal schedule ID",
)
@click.option(
    "--interval-minutes",
    default=15,
    type=click.IntRange(min=1),
    help="Resync interval in minutes",
)
@click.option(
    "--older-than-minutes",
    default=30,
    type=click.IntRange(min=0),
    help="Only resync payments pending for longer than this",
)
@click.option(
    "--batch-size",
    default=50,
    type=click.IntRange(min=1),
    help="Maximum payments resynced per run",
)
@click.option(
    "--temporal-address",
    default=None,
    help="Temporal server address (defaults to TEMPORAL_ENDPOINT env var "
    "or temporal:7233)",
)
def start(
    schedule_id: str,
    interval_minutes: int,
    older_than_minutes: int,
    batch_size: int,
    temporal_address: Optional[str],
) -> None:
    """Create the payment resync schedule."""
    settings = load_settings()
    asyncio.run(
        _create_schedule(
            schedule_id,
            interval_minutes,
            older_than_minutes,
            batch_size,
            temporal_address or settings.temporal_endpoint,
            settings.resync_task_queue,
        )
    )


@cli.command()
@click.option(
    "--schedule-id",
    default=SCHEDULE_ID_PREFIX,
    help="Temporal schedule ID",
)
@click.option(
    "--temporal-address",
    default=None,
    help="Temporal server address (defaults to TEMPORAL_ENDPOINT env var "
    "or temporal:7233)",
)
def stop(schedule_id: str, temporal_address: Optional[str]) -> None:
    """Delete the payment resync schedule."""
    asyncio.run(
        _delete_schedule(schedule_id, _resolve_address(temporal_address))
    )


@cli.command(name="list")
@click.option(
    "--temporal-address",
    default=None,
    help="Temporal server address (defaults to TEMPORAL_ENDPOINT env var "
    "or temporal:7233)",
)
def list_command(temporal_address: Optional[str]) -> None:
    """List payment resync schedules."""
    asyncio.run(_list_schedules(_resolve_address(temporal_address)))


if __name__ == "__main__":
    cli()
