"""
FastAPI application for the shop order and payment service.

The API provides endpoints for:
- Checkout, order queries and cancellation
- Payment creation and queries
- Cart lines
- Payment gateway webhooks
- Admin payment sync and shipment transitions
- Health checks

Every response carries a ``success`` flag. Errors are rendered as
``{"success": false, "message": ..., "errors"?: [...]}`` by the exception
handlers registered below; internal detail is only exposed when
``SHOP_ENV=development``.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination
from fastapi_pagination.utils import disable_installed_extensions_check
from starlette.exceptions import HTTPException as StarletteHTTPException

from shop.api.dependencies import get_container, get_settings
from shop.api.responses import ErrorResponse, FieldError
from shop.api.routers import admin, cart, orders, payments, system, webhooks
from shop.exceptions import RequestValidationFailed, ShopError
from shop.validation import format_error_items

# Disable pagination extensions check for cleaner startup
disable_installed_extensions_check()


def setup_logging() -> None:
    """Configure logging based on environment variables"""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get(
        "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Validate log level
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        print(f"Invalid log level: {log_level}, defaulting to INFO")
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        force=True,  # Override any existing configuration
    )


# Setup logging when module is imported
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await get_container().close()


app = FastAPI(
    title="Shop Order & Payment API",
    description="Checkout, payment and gateway reconciliation API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(system.router)
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])

# Add pagination support
_ = add_pagination(app)


async def _is_development(request: Request) -> bool:
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    try:
        settings = await provider()
    except Exception:
        logger.error(
            "Could not load settings for error response", exc_info=True
        )
        return False
    return bool(settings.is_development)


def _error_body(
    message: str,
    errors: Optional[List[Dict[str, Any]]] = None,
    detail: Optional[str] = None,
) -> Dict[str, Any]:
    response = ErrorResponse(
        message=message,
        errors=[FieldError(**error) for error in errors] if errors else None,
        error=detail,
    )
    return response.model_dump(exclude_none=True)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    errors = exc.errors if isinstance(exc, RequestValidationFailed) else None
    detail = None
    if exc.status_code >= 500 and await _is_development(request):
        detail = str(exc.__cause__ or exc)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request failed",
        extra={
            "path": request.url.path,
            "kind": exc.kind,
            "status_code": exc.status_code,
            "error_message": exc.message,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, errors, detail),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = format_error_items(exc.errors())
    logger.info(
        "Request validation failed",
        extra={"path": request.url.path, "validation_errors": errors},
    )
    return JSONResponse(
        status_code=400, content=_error_body("Validation failed", errors)
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    logger.error(
        "Unhandled error",
        exc_info=exc,
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        },
    )
    detail = str(exc) if await _is_development(request) else None
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", detail=detail),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "shop.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
