"""
Orders API router.

Routes defined at root level:
- POST /orders - Check out the caller's cart into a new order
- GET /orders - List the caller's orders with pagination
- GET /orders/{order_id} - Get one order with its payment summary
- GET /orders/{order_id}/payment - Get the payment for one order
- PUT /orders/{order_id}/cancel - Cancel an order and release its stock

These routes are mounted with '/orders' prefix in the main app.
"""

import logging
from typing import Optional, cast

from fastapi import APIRouter, Depends
from fastapi_pagination import Page, Params, paginate

from shop.api.dependencies import (
    CurrentUser,
    get_cancel_order_use_case,
    get_checkout_use_case,
    get_current_user,
    get_get_order_use_case,
    get_get_payment_use_case,
)
from shop.api.requests import CheckoutRequest
from shop.api.responses import (
    OrderData,
    OrderDetail,
    PaymentData,
    PaymentSummary,
    SuccessResponse,
)
from shop.domain import Order, OrderPaymentStatus, OrderStatus
from shop.exceptions import InternalError, PaymentNotFoundError, ShopError
from shop.usecase import (
    CancelOrderUseCase,
    CheckoutUseCase,
    GetOrderUseCase,
    GetPaymentUseCase,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "", status_code=201, response_model=SuccessResponse[OrderData]
)
async def create_order(
    request: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: CheckoutUseCase = Depends(get_checkout_use_case),
) -> SuccessResponse[OrderData]:
    """
    Create an order from the caller's cart.

    Stock for every line is reserved in the same atomic unit that creates
    the order, and the consumed cart lines are removed.
    """
    logger.info(
        "Order creation requested",
        extra={"user_id": user.user_id, "address_id": request.address_id},
    )

    try:
        order = await use_case.checkout(
            user_id=user.user_id,
            address_id=request.address_id,
            cart_line_ids=request.cart_line_ids or None,
            shipping_method=request.shipping_method,
            notes=request.notes,
        )
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to create order",
            exc_info=True,
            extra={
                "user_id": user.user_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to create order") from e

    return SuccessResponse(
        message="Order created successfully", data=OrderData(order=order)
    )


@router.get("", response_model=SuccessResponse[Page[Order]])
async def list_orders(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[OrderPaymentStatus] = None,
    params: Params = Depends(),
    user: CurrentUser = Depends(get_current_user),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case),
) -> SuccessResponse[Page[Order]]:
    """
    List the caller's orders, newest first.

    Optional ``status`` and ``payment_status`` query parameters filter the
    list before pagination.
    """
    try:
        orders = await use_case.list_orders(
            user.user_id, status=status, payment_status=payment_status
        )
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to retrieve orders",
            exc_info=True,
            extra={
                "user_id": user.user_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to retrieve orders") from e

    return SuccessResponse(data=cast(Page[Order], paginate(orders, params)))


@router.get("/{order_id}", response_model=SuccessResponse[OrderDetail])
async def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    order_use_case: GetOrderUseCase = Depends(get_get_order_use_case),
    payment_use_case: GetPaymentUseCase = Depends(get_get_payment_use_case),
) -> SuccessResponse[OrderDetail]:
    try:
        order = await order_use_case.get_order(user.user_id, order_id)
        try:
            payment = await payment_use_case.get_payment_for_order(
                user.user_id, order_id
            )
        except PaymentNotFoundError:
            summary = None
        else:
            summary = PaymentSummary.from_payment(payment)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to retrieve order",
            exc_info=True,
            extra={
                "order_id": order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to retrieve order") from e

    return SuccessResponse(data=OrderDetail(order=order, payment=summary))


@router.get("/{order_id}/payment", response_model=SuccessResponse[PaymentData])
async def get_order_payment(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: GetPaymentUseCase = Depends(get_get_payment_use_case),
) -> SuccessResponse[PaymentData]:
    try:
        payment = await use_case.get_payment_for_order(user.user_id, order_id)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to retrieve order payment",
            exc_info=True,
            extra={
                "order_id": order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to retrieve payment") from e

    return SuccessResponse(data=PaymentData(payment=payment))


@router.put("/{order_id}/cancel", response_model=SuccessResponse[OrderData])
async def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case),
) -> SuccessResponse[OrderData]:
    """
    Cancel a pending or confirmed order.

    Every line item's quantity is returned to its product's stock and a
    pending payment status becomes failed.
    """
    try:
        order = await use_case.cancel_order(user.user_id, order_id)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to cancel order",
            exc_info=True,
            extra={
                "order_id": order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to cancel order") from e

    return SuccessResponse(
        message="Order cancelled successfully", data=OrderData(order=order)
    )
