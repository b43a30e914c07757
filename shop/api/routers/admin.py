"""
Admin API router.

Routes defined at root level:
- POST /admin/payments/sync/{order_id} - Re-query the gateway for a payment
- POST /admin/shipments - Create a shipment for an order
- PUT /admin/shipments/{shipment_id}/status - Move a shipment's status

Every route requires the admin role.

These routes are mounted with '/admin' prefix in the main app.
"""

import logging

from fastapi import APIRouter, Depends

from shop.api.dependencies import (
    get_payment_sync_use_case,
    get_shipment_repository,
    get_shipment_use_case,
    require_admin,
)
from shop.api.requests import (
    CreateShipmentRequest,
    UpdateShipmentStatusRequest,
)
from shop.api.responses import PaymentSyncData, SuccessResponse
from shop.domain import Shipment
from shop.exceptions import InternalError, ShopError
from shop.repositories import ShipmentRepository
from shop.usecase import PaymentSyncUseCase, ShipmentUseCase

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post(
    "/payments/sync/{order_id}",
    response_model=SuccessResponse[PaymentSyncData],
)
async def sync_payment(
    order_id: str,
    use_case: PaymentSyncUseCase = Depends(get_payment_sync_use_case),
) -> SuccessResponse[PaymentSyncData]:
    """
    Synchronize an order's payment with the gateway.

    The gateway's current status goes through the same reconciliation as a
    webhook, and is recorded in the payment's log tagged ``sync``.
    """
    logger.info("Payment sync requested", extra={"order_id": order_id})

    try:
        result = await use_case.sync_order_payment(order_id)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to sync payment status",
            exc_info=True,
            extra={
                "order_id": order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to sync payment status") from e

    return SuccessResponse(
        message="Payment status synchronized successfully",
        data=PaymentSyncData(
            payment=result.payment,
            outcome=result.outcome,
            reason=result.reason,
            gateway_response=result.payment.webhook_logs[-1].notification,
        ),
    )


@router.post(
    "/shipments", status_code=201, response_model=SuccessResponse[Shipment]
)
async def create_shipment(
    request: CreateShipmentRequest,
    repository: ShipmentRepository = Depends(get_shipment_repository),
    use_case: ShipmentUseCase = Depends(get_shipment_use_case),
) -> SuccessResponse[Shipment]:
    logger.info(
        "Shipment creation requested",
        extra={
            "order_id": request.order_id,
            "tracking_number": request.tracking_number,
        },
    )

    try:
        shipment_id = await repository.generate_shipment_id()
        shipment = await use_case.create_shipment(
            request.to_domain_model(shipment_id)
        )
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to create shipment",
            exc_info=True,
            extra={
                "order_id": request.order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to create shipment") from e

    return SuccessResponse(
        message="Shipment created successfully", data=shipment
    )


@router.put(
    "/shipments/{shipment_id}/status",
    response_model=SuccessResponse[Shipment],
)
async def update_shipment_status(
    shipment_id: str,
    request: UpdateShipmentStatusRequest,
    use_case: ShipmentUseCase = Depends(get_shipment_use_case),
) -> SuccessResponse[Shipment]:
    """
    Move a shipment to a new status.

    in_transit moves the order to shipped and delivered moves it to
    delivered; delivered or cancelled orders are not moved.
    """
    try:
        shipment = await use_case.update_status(
            shipment_id, request.status, location=request.location
        )
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to update shipment status",
            exc_info=True,
            extra={
                "shipment_id": shipment_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to update shipment status") from e

    return SuccessResponse(
        message="Shipment status updated successfully", data=shipment
    )
