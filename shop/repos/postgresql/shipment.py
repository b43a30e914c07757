"""
PostgreSQL implementation of ShipmentRepository.
"""

import logging
import uuid
from typing import Optional

from asyncpg import Pool, Record
from asyncpg.exceptions import UniqueViolationError

from shop.domain import (
    OrderStatus,
    Shipment,
    ShipmentStatus,
    TERMINAL_ORDER_STATUSES,
    TrackingEvent,
    utc_now,
)
from shop.exceptions import (
    DuplicateShipmentError,
    DuplicateTrackingNumberError,
    NotFoundError,
)
from shop.repositories import ShipmentRepository

logger = logging.getLogger(__name__)

SHIPMENT_COLUMNS = """
    shipment_id, order_id, tracking_number, carrier, service_type,
    shipping_cost, status, estimated_delivery, actual_delivery,
    origin_address, destination_address, notes, tracking_history,
    created_at, updated_at
"""


def row_to_shipment(row: Record) -> Shipment:
    return Shipment(**dict(row))


class PostgreSQLShipmentRepository(ShipmentRepository):
    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLShipmentRepository")

    async def generate_shipment_id(self) -> str:
        return str(uuid.uuid4())

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order_status = await conn.fetchval(
                    """
                    SELECT status FROM orders
                    WHERE order_id = $1 AND deleted_at IS NULL
                    FOR UPDATE
                    """,
                    shipment.order_id,
                )
                if order_status is None:
                    raise NotFoundError("Order not found")

                try:
                    await conn.execute(
                        f"""
                        INSERT INTO shipments ({SHIPMENT_COLUMNS})
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                                $11, $12, $13, $14, $15)
                        """,
                        shipment.shipment_id,
                        shipment.order_id,
                        shipment.tracking_number,
                        shipment.carrier,
                        shipment.service_type,
                        shipment.shipping_cost,
                        shipment.status.value,
                        shipment.estimated_delivery,
                        shipment.actual_delivery,
                        shipment.origin_address,
                        shipment.destination_address,
                        shipment.notes,
                        [
                            event.model_dump(mode="json")
                            for event in shipment.tracking_history
                        ],
                        shipment.created_at,
                        shipment.updated_at,
                    )
                except UniqueViolationError as e:
                    if "tracking_number" in (e.constraint_name or ""):
                        raise DuplicateTrackingNumberError(
                            shipment.tracking_number
                        ) from e
                    raise DuplicateShipmentError(shipment.order_id) from e

                if order_status == OrderStatus.CONFIRMED.value:
                    await conn.execute(
                        """
                        UPDATE orders SET status = $2, updated_at = $3
                        WHERE order_id = $1
                        """,
                        shipment.order_id,
                        OrderStatus.PROCESSING.value,
                        shipment.created_at or utc_now(),
                    )

        logger.info(
            "Saved shipment to PostgreSQL",
            extra={
                "shipment_id": shipment.shipment_id,
                "order_id": shipment.order_id,
                "tracking_number": shipment.tracking_number,
            },
        )
        return shipment

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {SHIPMENT_COLUMNS}
                FROM shipments
                WHERE shipment_id = $1
                """,
                shipment_id,
            )
        return row_to_shipment(row) if row else None

    async def record_status(
        self,
        shipment_id: str,
        event: TrackingEvent,
        order_status: Optional[OrderStatus],
    ) -> Optional[Shipment]:
        delivered_at = (
            event.timestamp
            if event.status == ShipmentStatus.DELIVERED
            else None
        )
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    UPDATE shipments
                    SET status = $2,
                        tracking_history = tracking_history || $3::jsonb,
                        actual_delivery = COALESCE($4, actual_delivery),
                        updated_at = $5
                    WHERE shipment_id = $1
                    RETURNING {SHIPMENT_COLUMNS}
                    """,
                    shipment_id,
                    event.status.value,
                    [event.model_dump(mode="json")],
                    delivered_at,
                    event.timestamp,
                )
                if row is None:
                    return None

                if order_status is not None:
                    await conn.execute(
                        """
                        UPDATE orders
                        SET status = $2,
                            delivered_at = CASE
                                WHEN $2::text = $3::text THEN $4
                                ELSE delivered_at
                            END,
                            updated_at = $4
                        WHERE order_id = $1
                          AND status <> ALL($5::text[])
                        """,
                        row["order_id"],
                        order_status.value,
                        OrderStatus.DELIVERED.value,
                        event.timestamp,
                        [status.value for status in TERMINAL_ORDER_STATUSES],
                    )

        logger.info(
            "Recorded shipment status in PostgreSQL",
            extra={
                "shipment_id": shipment_id,
                "status": event.status.value,
                "order_status": order_status.value if order_status else None,
            },
        )
        return row_to_shipment(row)
