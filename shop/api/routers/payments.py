"""
Payments API router.

Routes defined at root level:
- POST /payments - Create the gateway transaction and payment for an order
- GET /payments/{payment_id} - Get one of the caller's payments

These routes are mounted with '/payments' prefix in the main app.
"""

import logging

from fastapi import APIRouter, Depends

from shop.api.dependencies import (
    CurrentUser,
    get_current_user,
    get_get_payment_use_case,
    get_payment_initiation_use_case,
)
from shop.api.requests import CreatePaymentRequest
from shop.api.responses import (
    PaymentData,
    PaymentInitiationData,
    SuccessResponse,
)
from shop.exceptions import InternalError, ShopError
from shop.usecase import GetPaymentUseCase, PaymentInitiationUseCase

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "", status_code=201, response_model=SuccessResponse[PaymentInitiationData]
)
async def create_payment(
    request: CreatePaymentRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: PaymentInitiationUseCase = Depends(
        get_payment_initiation_use_case
    ),
) -> SuccessResponse[PaymentInitiationData]:
    """
    Create a payment for a pending order.

    The gateway transaction is created first; the local payment row is only
    written once the gateway has answered with a token.
    """
    try:
        initiation = await use_case.initiate_payment(
            user.user_id, request.order_id
        )
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to create payment",
            exc_info=True,
            extra={
                "order_id": request.order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to create payment") from e

    return SuccessResponse(
        message="Payment created successfully",
        data=PaymentInitiationData(
            payment=initiation.payment,
            token=initiation.token,
            redirect_url=initiation.redirect_url,
        ),
    )


@router.get("/{payment_id}", response_model=SuccessResponse[PaymentData])
async def get_payment(
    payment_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: GetPaymentUseCase = Depends(get_get_payment_use_case),
) -> SuccessResponse[PaymentData]:
    try:
        payment = await use_case.get_payment(user.user_id, payment_id)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to retrieve payment",
            exc_info=True,
            extra={
                "payment_id": payment_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to retrieve payment") from e

    return SuccessResponse(data=PaymentData(payment=payment))
