"""
Payment gateway webhook router.

Routes defined at root level:
- POST /webhooks/midtrans/notification - Apply a gateway notification

The endpoint is unauthenticated; the gateway retries any notification that
is not answered with 200. Duplicates and ignored notifications are answered
with 200 so that they are not retried.

These routes are mounted with '/webhooks' prefix in the main app.
"""

import logging

from fastapi import APIRouter, Depends, Request

from shop.api.dependencies import get_notification_reconciler_use_case
from shop.api.responses import NotificationData, SuccessResponse
from shop.domain import PaymentNotification
from shop.exceptions import InternalError, RequestValidationFailed, ShopError
from shop.usecase import NotificationReconcilerUseCase
from shop.validation import validate_domain_model

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/midtrans/notification",
    response_model=SuccessResponse[NotificationData],
)
async def handle_midtrans_notification(
    request: Request,
    use_case: NotificationReconcilerUseCase = Depends(
        get_notification_reconciler_use_case
    ),
) -> SuccessResponse[NotificationData]:
    """
    Apply a Midtrans payment notification.

    The body is parsed by hand so that unknown gateway fields are kept
    verbatim in the payment's notification log.
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise RequestValidationFailed(
            errors=[{"field": "body", "message": "Invalid JSON"}]
        ) from e

    notification = validate_domain_model(body, PaymentNotification)

    try:
        result = await use_case.handle_notification(notification)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to process payment notification",
            exc_info=True,
            extra={
                "gateway_order_id": notification.order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to process notification") from e

    return SuccessResponse(
        message="Notification processed",
        data=NotificationData.from_result(result),
    )
