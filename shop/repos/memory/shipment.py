"""
Memory implementation of ShipmentRepository.
"""

import logging
import uuid
from typing import Optional

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

from .store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryShipmentRepository(ShipmentRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        logger.debug("Initializing MemoryShipmentRepository")

    async def generate_shipment_id(self) -> str:
        return str(uuid.uuid4())

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        async with self.store.transaction() as store:
            order = store.orders.get(shipment.order_id)
            if order is None or order.deleted_at is not None:
                raise NotFoundError("Order not found")
            for existing in store.shipments.values():
                if existing.order_id == shipment.order_id:
                    raise DuplicateShipmentError(shipment.order_id)
                if existing.tracking_number == shipment.tracking_number:
                    raise DuplicateTrackingNumberError(
                        shipment.tracking_number
                    )

            store.shipments[shipment.shipment_id] = shipment.model_copy(
                deep=True
            )
            if order.status == OrderStatus.CONFIRMED:
                order.status = OrderStatus.PROCESSING
                order.updated_at = shipment.created_at or utc_now()

        logger.info(
            "Shipment created",
            extra={
                "shipment_id": shipment.shipment_id,
                "order_id": shipment.order_id,
                "tracking_number": shipment.tracking_number,
            },
        )
        return shipment.model_copy(deep=True)

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        shipment = self.store.shipments.get(shipment_id)
        return shipment.model_copy(deep=True) if shipment else None

    async def record_status(
        self,
        shipment_id: str,
        event: TrackingEvent,
        order_status: Optional[OrderStatus],
    ) -> Optional[Shipment]:
        async with self.store.transaction() as store:
            shipment = store.shipments.get(shipment_id)
            if shipment is None:
                return None

            shipment.status = event.status
            shipment.tracking_history.append(event)
            shipment.updated_at = event.timestamp
            if event.status == ShipmentStatus.DELIVERED:
                shipment.actual_delivery = event.timestamp

            order = store.orders.get(shipment.order_id)
            if (
                order_status is not None
                and order is not None
                and order.status not in TERMINAL_ORDER_STATUSES
            ):
                order.status = order_status
                order.updated_at = event.timestamp
                if order_status == OrderStatus.DELIVERED:
                    order.delivered_at = event.timestamp

            updated = shipment.model_copy(deep=True)

        logger.info(
            "Shipment status recorded",
            extra={
                "shipment_id": shipment_id,
                "status": event.status.value,
                "order_status": order_status.value if order_status else None,
            },
        )
        return updated
