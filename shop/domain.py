"""
Domain models defined as Pydantic models.

These are pure data structures with validation, plus the payment
notification transition table and the pure reconciliation function that
applies a gateway notification to a Payment and its Order.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Literal,
    Optional,
    Tuple,
)

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# Gateway timestamps carry no offset and are reported in Jakarta time.
GATEWAY_TIMEZONE = timezone(timedelta(hours=7))

MONEY_QUANTUM = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY_QUANTUM)


# --- Enums ---


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    """Payment status as seen from the order."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Gateway transaction status mirrored on the payment record."""

    PENDING = "pending"
    SETTLEMENT = "settlement"
    CAPTURE = "capture"
    CANCEL = "cancel"
    DENY = "deny"
    EXPIRE = "expire"
    FAILURE = "failure"
    REFUND = "refund"
    PARTIAL_REFUND = "partial_refund"


class FraudStatus(str, Enum):
    ACCEPT = "accept"
    CHALLENGE = "challenge"
    DENY = "deny"


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    PICKUP = "pickup"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETURNED = "returned"


TERMINAL_ORDER_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

CANCELLABLE_ORDER_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED}
)

PAID_PAYMENT_STATUSES: FrozenSet[PaymentStatus] = frozenset(
    {PaymentStatus.CAPTURE, PaymentStatus.SETTLEMENT}
)


# --- Catalog, customer and cart ---


class Product(BaseModel):
    product_id: str
    name: str
    sku: Optional[str] = None
    price: Decimal
    stock_quantity: int
    is_active: bool = True
    deleted_at: Optional[datetime] = None

    @field_validator("price")
    @classmethod
    def price_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must be non-negative")
        return v

    @field_validator("stock_quantity")
    @classmethod
    def stock_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Stock quantity must be non-negative")
        return v


class Address(BaseModel):
    address_id: str
    user_id: str
    recipient_name: Optional[str] = None
    phone: Optional[str] = None
    address_line: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    is_active: bool = True
    deleted_at: Optional[datetime] = None


class Customer(BaseModel):
    """Customer contact details handed to the payment gateway."""

    user_id: str
    name: str
    email: str
    phone: Optional[str] = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0]

    @property
    def last_name(self) -> str:
        parts = self.name.split(" ")
        return " ".join(parts[1:])


class CartLine(BaseModel):
    """A (user, product, quantity) line, unique per (user, product).

    When loaded for checkout the live product is attached so prices and
    stock are read at the instant of checkout.
    """

    cart_line_id: str
    user_id: str
    product_id: str
    quantity: int
    product: Optional[Product] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v


# --- Orders ---


class OrderLineItem(BaseModel):
    """Immutable snapshot of a product line at order time."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    unit_price: Decimal
    quantity: int
    total_price: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit price must be non-negative")
        return v

    @field_validator("total_price")
    @classmethod
    def total_price_must_match_quantity(cls, v: Decimal, info) -> Decimal:
        unit_price = info.data.get("unit_price")
        quantity = info.data.get("quantity")
        if unit_price is not None and quantity is not None:
            if quantize_money(v) != quantize_money(unit_price * quantity):
                raise ValueError(
                    "Total price must equal unit price times quantity"
                )
        return v

    @classmethod
    def from_cart_line(cls, line: CartLine) -> "OrderLineItem":
        if line.product is None:
            raise ValueError(
                f"Cart line {line.cart_line_id} has no product loaded"
            )
        product = line.product
        return cls(
            product_id=product.product_id,
            product_name=product.name,
            product_sku=product.sku,
            unit_price=product.price,
            quantity=line.quantity,
            total_price=quantize_money(product.price * line.quantity),
        )


class OrderAdjustments(BaseModel):
    """Shipping, tax and discount applied on top of the subtotal."""

    shipping_cost: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")

    @field_validator("shipping_cost", "tax_amount", "discount_amount")
    @classmethod
    def adjustment_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Adjustments must be non-negative")
        return v


def zero_adjustments(
    subtotal: Decimal, items: List[OrderLineItem]
) -> OrderAdjustments:
    """Default pricing policy: no shipping, tax or discount."""
    return OrderAdjustments()


class Order(BaseModel):
    order_id: str
    order_number: str
    user_id: str
    address_id: str
    items: List[OrderLineItem]
    subtotal: Decimal
    shipping_cost: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    total_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    shipping_method: Optional[str] = None
    notes: Optional[str] = None
    ordered_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[OrderLineItem]
    ) -> List[OrderLineItem]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @field_validator(
        "subtotal", "shipping_cost", "tax_amount", "discount_amount"
    )
    @classmethod
    def amounts_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Order amounts must be non-negative")
        return v

    @field_validator("total_amount")
    @classmethod
    def total_amount_must_balance(cls, v: Decimal, info) -> Decimal:
        if v < 0:
            raise ValueError("Total amount must be non-negative")
        parts = [
            info.data.get(name)
            for name in (
                "subtotal",
                "shipping_cost",
                "tax_amount",
                "discount_amount",
            )
        ]
        if all(p is not None for p in parts):
            subtotal, shipping, tax, discount = parts
            expected = subtotal + shipping + tax - discount
            if quantize_money(v) != quantize_money(expected):
                raise ValueError(
                    "Total amount must equal subtotal + shipping_cost + "
                    "tax_amount - discount_amount"
                )
        return v

    @classmethod
    def from_cart_lines(
        cls,
        order_id: str,
        order_number: str,
        user_id: str,
        address_id: str,
        lines: List[CartLine],
        adjustments: OrderAdjustments,
        ordered_at: datetime,
        shipping_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> "Order":
        items = [OrderLineItem.from_cart_line(line) for line in lines]
        subtotal = quantize_money(
            sum((item.total_price for item in items), Decimal("0"))
        )
        total = quantize_money(
            subtotal
            + adjustments.shipping_cost
            + adjustments.tax_amount
            - adjustments.discount_amount
        )
        return cls(
            order_id=order_id,
            order_number=order_number,
            user_id=user_id,
            address_id=address_id,
            items=items,
            subtotal=subtotal,
            shipping_cost=adjustments.shipping_cost,
            tax_amount=adjustments.tax_amount,
            discount_amount=adjustments.discount_amount,
            total_amount=total,
            shipping_method=shipping_method,
            notes=notes,
            ordered_at=ordered_at,
            created_at=ordered_at,
            updated_at=ordered_at,
        )


def format_order_number(epoch_ms: int, suffix: int) -> str:
    """Human-meaningful order number, e.g. ORD-1700000000000-042."""
    return f"ORD-{epoch_ms}-{suffix:03d}"


def order_matches_cart(
    order: Order, consumed: Iterable[Tuple[str, int]]
) -> bool:
    """True when the consumed (product_id, quantity) cart lines are exactly
    the order's line items."""
    expected = sorted((item.product_id, item.quantity) for item in order.items)
    return sorted(consumed) == expected


# --- Payments ---


class NotificationLogEntry(BaseModel):
    received_at: datetime
    source: Literal["webhook", "sync"] = "webhook"
    notification: Dict[str, Any]


class PaymentNotification(BaseModel):
    """Payload pushed by the gateway (or returned by its status query).

    Unknown fields are kept so the raw payload can be stored verbatim.
    """

    model_config = ConfigDict(extra="allow")

    order_id: str
    transaction_status: str
    transaction_id: Optional[str] = None
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    signature_key: Optional[str] = None
    status_code: Optional[str] = None
    gross_amount: Optional[str] = None
    settlement_time: Optional[str] = None
    transaction_time: Optional[str] = None

    @field_validator("order_id", "status_code", "gross_amount", mode="before")
    @classmethod
    def numbers_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("order_id", "transaction_status")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v

    def raw(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


def compute_notification_signature(
    order_id: str, status_code: str, gross_amount: str, server_key: str
) -> str:
    """sha512 hex of order_id + status_code + gross_amount + server_key."""
    payload = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(payload.encode("utf-8")).hexdigest()


def signature_matches(
    notification: "PaymentNotification", server_key: str
) -> bool:
    if not (
        notification.signature_key
        and notification.status_code
        and notification.gross_amount
    ):
        return False
    expected = compute_notification_signature(
        notification.order_id,
        notification.status_code,
        notification.gross_amount,
        server_key,
    )
    return hmac.compare_digest(expected, notification.signature_key)


class Payment(BaseModel):
    payment_id: str
    order_id: str
    user_id: str
    payment_method: str = "midtrans"
    amount: Decimal
    currency: str = "IDR"
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    fraud_status: Optional[FraudStatus] = None
    payment_type: Optional[str] = None
    payment_date: Optional[datetime] = None
    expiry_time: Optional[datetime] = None
    payment_url: Optional[str] = None
    signature_key: Optional[str] = None
    raw_response: Dict[str, Any] = Field(default_factory=dict)
    webhook_logs: List[NotificationLogEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v


class NotificationTransition(BaseModel):
    """Effect of one transaction_status on the payment and its order."""

    model_config = ConfigDict(frozen=True)

    payment_status: PaymentStatus
    order_payment_status: OrderPaymentStatus
    order_status_if_pending: Optional[OrderStatus] = None


def _transition(
    payment_status: PaymentStatus,
    order_payment_status: OrderPaymentStatus,
    order_status_if_pending: Optional[OrderStatus] = None,
) -> NotificationTransition:
    return NotificationTransition(
        payment_status=payment_status,
        order_payment_status=order_payment_status,
        order_status_if_pending=order_status_if_pending,
    )


NOTIFICATION_TRANSITIONS: Dict[PaymentStatus, NotificationTransition] = {
    PaymentStatus.CAPTURE: _transition(
        PaymentStatus.CAPTURE, OrderPaymentStatus.PAID, OrderStatus.CONFIRMED
    ),
    PaymentStatus.SETTLEMENT: _transition(
        PaymentStatus.SETTLEMENT,
        OrderPaymentStatus.PAID,
        OrderStatus.CONFIRMED,
    ),
    PaymentStatus.PENDING: _transition(
        PaymentStatus.PENDING, OrderPaymentStatus.PENDING
    ),
    PaymentStatus.CANCEL: _transition(
        PaymentStatus.CANCEL, OrderPaymentStatus.FAILED, OrderStatus.CANCELLED
    ),
    PaymentStatus.DENY: _transition(
        PaymentStatus.DENY, OrderPaymentStatus.FAILED, OrderStatus.CANCELLED
    ),
    PaymentStatus.FAILURE: _transition(
        PaymentStatus.FAILURE,
        OrderPaymentStatus.FAILED,
        OrderStatus.CANCELLED,
    ),
    PaymentStatus.EXPIRE: _transition(
        PaymentStatus.EXPIRE, OrderPaymentStatus.FAILED, OrderStatus.CANCELLED
    ),
    PaymentStatus.REFUND: _transition(
        PaymentStatus.REFUND, OrderPaymentStatus.REFUNDED
    ),
    PaymentStatus.PARTIAL_REFUND: _transition(
        PaymentStatus.PARTIAL_REFUND, OrderPaymentStatus.REFUNDED
    ),
}

# Forward moves accepted when strict ordering is on. Missing keys are final.
ALLOWED_PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(PaymentStatus) - {PaymentStatus.PENDING},
    PaymentStatus.CAPTURE: frozenset(
        {
            PaymentStatus.SETTLEMENT,
            PaymentStatus.CANCEL,
            PaymentStatus.REFUND,
            PaymentStatus.PARTIAL_REFUND,
        }
    ),
    PaymentStatus.SETTLEMENT: frozenset(
        {PaymentStatus.REFUND, PaymentStatus.PARTIAL_REFUND}
    ),
    PaymentStatus.PARTIAL_REFUND: frozenset({PaymentStatus.REFUND}),
}


def is_final_payment_status(status: PaymentStatus) -> bool:
    return not ALLOWED_PAYMENT_TRANSITIONS.get(status)


def parse_gateway_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a gateway timestamp such as '2024-01-15 10:00:00'."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning(
            "Unparseable gateway timestamp", extra={"value": value}
        )
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=GATEWAY_TIMEZONE)
    return parsed


class ReconciliationResult(BaseModel):
    """Outcome of applying one notification to a payment and its order.

    - applied: payment status moved to the notified status
    - unchanged: notified status equals the current status
    - ignored: notification recorded but not applied
    """

    outcome: Literal["applied", "unchanged", "ignored"]
    reason: Optional[str] = None
    previous_status: PaymentStatus
    payment: Payment
    order: Order


def reconcile_notification(
    payment: Payment,
    order: Order,
    notification: PaymentNotification,
    received_at: datetime,
    strict: bool = True,
    source: Literal["webhook", "sync"] = "webhook",
) -> ReconciliationResult:
    """Apply a gateway notification to copies of a payment and its order.

    The raw notification is always appended to the payment's log and merged
    into raw_response. Status changes follow NOTIFICATION_TRANSITIONS. With
    strict set, moves out of a final status, backwards moves, and paid
    notifications for a cancelled order are recorded but not applied.
    """
    payment = payment.model_copy(deep=True)
    order = order.model_copy(deep=True)
    previous_status = payment.status
    raw = notification.raw()

    payment.webhook_logs.append(
        NotificationLogEntry(
            received_at=received_at, source=source, notification=raw
        )
    )
    payment.raw_response = {**payment.raw_response, **raw}
    payment.updated_at = received_at

    def result(
        outcome: Literal["applied", "unchanged", "ignored"],
        reason: Optional[str] = None,
    ) -> ReconciliationResult:
        return ReconciliationResult(
            outcome=outcome,
            reason=reason,
            previous_status=previous_status,
            payment=payment,
            order=order,
        )

    try:
        incoming = PaymentStatus(notification.transaction_status)
    except ValueError:
        logger.warning(
            "Unknown transaction status recorded without state change",
            extra={
                "payment_id": payment.payment_id,
                "transaction_status": notification.transaction_status,
            },
        )
        return result(
            "ignored",
            f"Unknown transaction status: {notification.transaction_status}",
        )

    if strict:
        if incoming == previous_status:
            _merge_reference_fields(payment, notification)
            return result("unchanged")

        if incoming not in ALLOWED_PAYMENT_TRANSITIONS.get(
            previous_status, frozenset()
        ):
            logger.info(
                "Out-of-order notification ignored",
                extra={
                    "payment_id": payment.payment_id,
                    "current_status": previous_status.value,
                    "notified_status": incoming.value,
                },
            )
            return result(
                "ignored",
                f"Transition {previous_status.value} -> {incoming.value} "
                "is not allowed",
            )

        if (
            incoming in PAID_PAYMENT_STATUSES
            and order.status == OrderStatus.CANCELLED
        ):
            logger.warning(
                "Paid notification for cancelled order ignored; manual "
                "refund required",
                extra={
                    "payment_id": payment.payment_id,
                    "order_id": order.order_id,
                    "notified_status": incoming.value,
                },
            )
            return result(
                "ignored",
                "Order is cancelled; payment requires manual refund",
            )

    transition = NOTIFICATION_TRANSITIONS[incoming]
    payment.status = transition.payment_status
    _merge_reference_fields(payment, notification)

    if incoming in PAID_PAYMENT_STATUSES:
        payment.payment_date = (
            parse_gateway_time(notification.settlement_time)
            or parse_gateway_time(notification.transaction_time)
            or received_at
        )
    if incoming == PaymentStatus.EXPIRE:
        payment.expiry_time = received_at

    order.payment_status = transition.order_payment_status
    if (
        order.status == OrderStatus.PENDING
        and transition.order_status_if_pending is not None
    ):
        order.status = transition.order_status_if_pending
    order.updated_at = received_at

    if incoming == previous_status:
        return result("unchanged")
    return result("applied")


def _merge_reference_fields(
    payment: Payment, notification: PaymentNotification
) -> None:
    """Overwrite reference fields only when the notification supplies them."""
    if notification.transaction_id:
        payment.transaction_id = notification.transaction_id
    if notification.payment_type:
        payment.payment_type = notification.payment_type
    if notification.signature_key:
        payment.signature_key = notification.signature_key
    if notification.fraud_status:
        try:
            payment.fraud_status = FraudStatus(notification.fraud_status)
        except ValueError:
            logger.warning(
                "Unknown fraud status ignored",
                extra={
                    "payment_id": payment.payment_id,
                    "fraud_status": notification.fraud_status,
                },
            )


# --- Gateway contract ---


class GatewayTransactionRequest(BaseModel):
    order_reference: str
    gross_amount: Decimal
    customer: Customer
    items: List[OrderLineItem]


class GatewayTransactionOutcome(BaseModel):
    """Result of asking the gateway to create a transaction."""

    status: Literal["created", "failed"]
    token: Optional[str] = Field(default=None, validate_default=True)
    redirect_url: Optional[str] = None
    raw_response: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None

    @field_validator("token")
    @classmethod
    def token_must_be_present_if_created(
        cls, v: Optional[str], info
    ) -> Optional[str]:
        if info.data.get("status") == "created" and not v:
            raise ValueError("Token must be present if status is created")
        return v


class GatewayStatusOutcome(BaseModel):
    """Result of querying the gateway for a transaction's status."""

    status: Literal["found", "failed"]
    notification: Optional[PaymentNotification] = Field(
        default=None, validate_default=True
    )
    reason: Optional[str] = None

    @field_validator("notification")
    @classmethod
    def notification_must_be_present_if_found(
        cls, v: Optional[PaymentNotification], info
    ) -> Optional[PaymentNotification]:
        if info.data.get("status") == "found" and v is None:
            raise ValueError(
                "Notification must be present if status is found"
            )
        return v


# --- Shipments ---


class TrackingEvent(BaseModel):
    status: ShipmentStatus
    description: str
    timestamp: datetime
    location: Optional[str] = None


class Shipment(BaseModel):
    shipment_id: str
    order_id: str
    tracking_number: str
    carrier: str
    service_type: Optional[str] = None
    shipping_cost: Decimal = Decimal("0")
    status: ShipmentStatus = ShipmentStatus.PENDING
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    origin_address: Optional[str] = None
    destination_address: Optional[str] = None
    notes: Optional[str] = None
    tracking_history: List[TrackingEvent] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("tracking_number", "carrier")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("shipping_cost")
    @classmethod
    def shipping_cost_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Shipping cost must be non-negative")
        return v


# Order status a shipment status moves the order into, when it moves it.
SHIPMENT_ORDER_STATUS: Dict[ShipmentStatus, OrderStatus] = {
    ShipmentStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    ShipmentStatus.DELIVERED: OrderStatus.DELIVERED,
}


# --- Periodic resync ---


class ResyncReport(BaseModel):
    """Tally of one periodic resync run, keyed by reconciliation outcome."""

    candidates: int = 0
    applied: int = 0
    unchanged: int = 0
    ignored: int = 0
    failed: int = 0

    def record(self, outcome: str) -> None:
        if outcome == "applied":
            self.applied += 1
        elif outcome == "unchanged":
            self.unchanged += 1
        elif outcome == "ignored":
            self.ignored += 1
        else:
            self.failed += 1
