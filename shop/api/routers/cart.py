"""
Cart API router.

Routes defined at root level:
- POST /cart/items - Add a product to the caller's cart
- GET /cart - List the caller's cart lines

These routes are mounted with '/cart' prefix in the main app.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from shop.api.dependencies import (
    CurrentUser,
    get_cart_use_case,
    get_current_user,
)
from shop.api.requests import AddCartItemRequest
from shop.api.responses import SuccessResponse
from shop.domain import CartLine
from shop.exceptions import InternalError, ShopError
from shop.usecase import CartUseCase

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/items", status_code=201, response_model=SuccessResponse[CartLine]
)
async def add_cart_item(
    request: AddCartItemRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: CartUseCase = Depends(get_cart_use_case),
) -> SuccessResponse[CartLine]:
    try:
        line = await use_case.add_item(
            user.user_id, request.product_id, request.quantity
        )
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to add product to cart",
            exc_info=True,
            extra={
                "user_id": user.user_id,
                "product_id": request.product_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to add product to cart") from e

    return SuccessResponse(message="Product added to cart", data=line)


@router.get("", response_model=SuccessResponse[List[CartLine]])
async def get_cart(
    user: CurrentUser = Depends(get_current_user),
    use_case: CartUseCase = Depends(get_cart_use_case),
) -> SuccessResponse[List[CartLine]]:
    try:
        lines = await use_case.get_cart(user.user_id)
    except ShopError:
        raise
    except Exception as e:
        logger.error(
            "Failed to retrieve cart",
            exc_info=True,
            extra={
                "user_id": user.user_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise InternalError("Failed to retrieve cart") from e

    return SuccessResponse(data=lines)
