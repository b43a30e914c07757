"""
Error taxonomy raised by use cases and repositories.

Every error carries a human-readable message and the HTTP status it is
reported with. The API layer renders them as
``{"success": false, "message": ..., "errors"?: [...]}``.
"""

from typing import Any, Dict, List, Optional


class ShopError(Exception):
    """Base class for all expected shop failures."""

    kind = "internal"
    status_code = 500

    def __init__(
        self, message: str, status_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ShopError):
    """Entity absent, or not owned by the caller."""

    kind = "not_found"
    status_code = 404


class RequestValidationFailed(ShopError):
    """Malformed or out-of-range input, caught before any mutation."""

    kind = "validation"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or []


class AuthenticationRequiredError(ShopError):
    kind = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDeniedError(ShopError):
    kind = "forbidden"
    status_code = 403

    def __init__(self, message: str = "Admin access required") -> None:
        super().__init__(message)


class ConflictError(ShopError):
    kind = "conflict"
    status_code = 409


class InvalidStateError(ShopError):
    """Operation not permitted in the entity's current lifecycle state."""

    kind = "invalid_state"
    status_code = 400


class DependencyFailureError(ShopError):
    """External gateway unreachable or erroring."""

    kind = "dependency_failure"
    status_code = 502


class InternalError(ShopError):
    kind = "internal"
    status_code = 500


class InsufficientStockError(RequestValidationFailed):
    def __init__(self, product_name: str, available: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}"
        )
        self.product_name = product_name
        self.available = available


class ProductUnavailableError(RequestValidationFailed):
    def __init__(self, product_name: str) -> None:
        super().__init__(f"Product {product_name} is no longer available")
        self.product_name = product_name


class EmptyCartError(RequestValidationFailed):
    def __init__(self) -> None:
        super().__init__("Cart is empty")


class OrderNumberTakenError(ConflictError):
    """A generated order number collided with an existing order."""

    def __init__(self, order_number: str) -> None:
        super().__init__(f"Order number {order_number} already exists")
        self.order_number = order_number


class OrderNumberExhaustedError(ConflictError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Could not generate a unique order number after {attempts} "
            "attempts"
        )
        self.attempts = attempts


class PaymentAlreadyExistsError(ConflictError):
    def __init__(self, order_id: str) -> None:
        super().__init__("Payment already exists for this order")
        self.order_id = order_id


class PaymentNotFoundError(NotFoundError):
    def __init__(self, reference: str) -> None:
        super().__init__("Payment not found")
        self.reference = reference


class InvalidSignatureError(RequestValidationFailed):
    def __init__(self) -> None:
        super().__init__("Invalid signature")


class DuplicateShipmentError(ConflictError):
    def __init__(self, order_id: str) -> None:
        super().__init__("Shipment already exists for this order")
        self.order_id = order_id


class DuplicateTrackingNumberError(ConflictError):
    def __init__(self, tracking_number: str) -> None:
        super().__init__("Tracking number already exists")
        self.tracking_number = tracking_number


class CartChangedError(ConflictError):
    """The cart lines an order was built from were consumed or edited
    before the order was placed."""

    def __init__(self) -> None:
        super().__init__("Cart has changed, please review your cart")
