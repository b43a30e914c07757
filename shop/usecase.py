"""
usecase logic must be clean, without direct dependencies.
dependencies are injected via repository instances.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Callable, List, Literal, Optional, Sequence

from pydantic import BaseModel

from shop.domain import (
    CANCELLABLE_ORDER_STATUSES,
    SHIPMENT_ORDER_STATUS,
    CartLine,
    GatewayTransactionRequest,
    Order,
    OrderAdjustments,
    OrderLineItem,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentNotification,
    PaymentStatus,
    ReconciliationResult,
    Shipment,
    ShipmentStatus,
    TrackingEvent,
    reconcile_notification,
    utc_now,
    zero_adjustments,
)
from shop.exceptions import (
    DependencyFailureError,
    EmptyCartError,
    InsufficientStockError,
    InvalidSignatureError,
    InvalidStateError,
    NotFoundError,
    OrderNumberExhaustedError,
    OrderNumberTakenError,
    PaymentAlreadyExistsError,
    PaymentNotFoundError,
    ProductUnavailableError,
    ShopError,
)
from shop.repositories import (
    AddressRepository,
    CartRepository,
    CustomerRepository,
    OrderRepository,
    PaymentGateway,
    PaymentRepository,
    ProductRepository,
    ShipmentRepository,
)
from shop.validation import (
    ensure_address_repository,
    ensure_cart_repository,
    ensure_customer_repository,
    ensure_order_repository,
    ensure_payment_gateway,
    ensure_payment_repository,
    ensure_product_repository,
    ensure_shipment_repository,
)

logger = logging.getLogger(__name__)

PricingPolicy = Callable[[Decimal, List[OrderLineItem]], OrderAdjustments]


class CheckoutUseCase:
    """
    Use case turning a cart into an order while reserving inventory.

    All preconditions are checked before anything is written. The write
    itself (order header, line items, stock decrement, cart deletion) is a
    single atomic unit owned by the order repository, which also guards the
    stock decrement so that concurrent checkouts cannot oversell.

    Architectural Notes:
    - Order numbers are random candidates; a collision detected by the
      repository is retried with a fresh candidate up to
      ``max_order_number_attempts`` times
    - Shipping, tax and discount come from the injected pricing policy,
      which defaults to zero adjustments
    """

    def __init__(
        self,
        address_repo: AddressRepository,
        cart_repo: CartRepository,
        order_repo: OrderRepository,
        pricing_policy: Optional[PricingPolicy] = None,
        max_order_number_attempts: int = 10,
    ) -> None:
        """Initialize checkout use case.

        Args:
            address_repo: Repository for delivery address lookups
            cart_repo: Repository for the caller's cart lines
            order_repo: Repository placing the order atomically
            pricing_policy: Computes shipping/tax/discount from the subtotal
                and line items
            max_order_number_attempts: Bound on order number retries
        """
        self.address_repo = ensure_address_repository(address_repo)
        self.cart_repo = ensure_cart_repository(cart_repo)
        self.order_repo = ensure_order_repository(order_repo)
        self.pricing_policy = pricing_policy or zero_adjustments
        self.max_order_number_attempts = max_order_number_attempts

    async def checkout(
        self,
        user_id: str,
        address_id: str,
        cart_line_ids: Optional[Sequence[str]] = None,
        shipping_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create exactly one order from the caller's cart, or nothing at all.

        This method:
        1. Checks the delivery address is active and owned by the caller.
        2. Loads the selected cart lines (all lines when none are given).
        3. Checks every product is active and has enough stock.
        4. Builds the order from live prices and places it, retrying on
           order number collisions.
        """
        logger.info(
            "Starting checkout",
            extra={
                "user_id": user_id,
                "address_id": address_id,
                "selected_lines": (
                    len(cart_line_ids) if cart_line_ids is not None else None
                ),
            },
        )

        address = await self.address_repo.get_active_address(
            address_id, user_id
        )
        if address is None:
            logger.warning(
                "Checkout rejected: address not found",
                extra={"user_id": user_id, "address_id": address_id},
            )
            raise NotFoundError("Address not found")

        lines = await self.cart_repo.get_lines(
            user_id, list(cart_line_ids) if cart_line_ids else None
        )
        if not lines:
            logger.warning(
                "Checkout rejected: cart is empty",
                extra={"user_id": user_id},
            )
            raise EmptyCartError()

        self._check_lines(lines)

        order_id = await self.order_repo.generate_order_id()
        consumed_line_ids = [line.cart_line_id for line in lines]
        items = [OrderLineItem.from_cart_line(line) for line in lines]
        subtotal = sum((item.total_price for item in items), Decimal("0"))
        adjustments = self.pricing_policy(subtotal, items)

        for attempt in range(1, self.max_order_number_attempts + 1):
            order_number = await self.order_repo.generate_order_number()
            order = Order.from_cart_lines(
                order_id=order_id,
                order_number=order_number,
                user_id=user_id,
                address_id=address.address_id,
                lines=lines,
                adjustments=adjustments,
                ordered_at=utc_now(),
                shipping_method=shipping_method,
                notes=notes,
            )
            try:
                placed = await self.order_repo.place_order(
                    order, consumed_line_ids
                )
            except OrderNumberTakenError:
                logger.warning(
                    "Order number collision, retrying",
                    extra={
                        "user_id": user_id,
                        "order_number": order_number,
                        "attempt": attempt,
                    },
                )
                continue

            logger.info(
                "Checkout completed",
                extra={
                    "user_id": user_id,
                    "order_id": placed.order_id,
                    "order_number": placed.order_number,
                    "total_amount": str(placed.total_amount),
                    "item_count": len(placed.items),
                },
            )
            return placed

        logger.error(
            "Checkout failed: order number attempts exhausted",
            extra={
                "user_id": user_id,
                "attempts": self.max_order_number_attempts,
            },
        )
        raise OrderNumberExhaustedError(self.max_order_number_attempts)

    def _check_lines(self, lines: List[CartLine]) -> None:
        for line in lines:
            product = line.product
            if (
                product is None
                or not product.is_active
                or product.deleted_at is not None
            ):
                name = product.name if product else line.product_id
                logger.warning(
                    "Checkout rejected: product unavailable",
                    extra={"product_id": line.product_id},
                )
                raise ProductUnavailableError(name)
            if line.quantity > product.stock_quantity:
                logger.warning(
                    "Checkout rejected: insufficient stock",
                    extra={
                        "product_id": product.product_id,
                        "requested": line.quantity,
                        "available": product.stock_quantity,
                    },
                )
                raise InsufficientStockError(
                    product.name, product.stock_quantity
                )


class PaymentInitiation(BaseModel):
    """A created payment plus the gateway's redirect artifact."""

    payment: Payment
    token: str
    redirect_url: Optional[str] = None


class PaymentInitiationUseCase:
    """
    Use case creating the payment record for a pending order.

    The gateway call happens before anything is written locally, and never
    inside a store transaction. If the gateway fails, no payment row exists
    and the order can be paid again later.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        customer_repo: CustomerRepository,
        gateway: PaymentGateway,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.payment_repo = ensure_payment_repository(payment_repo)
        self.customer_repo = ensure_customer_repository(customer_repo)
        self.gateway = ensure_payment_gateway(gateway)

    async def initiate_payment(
        self, user_id: str, order_id: str
    ) -> PaymentInitiation:
        logger.info(
            "Payment initiation requested",
            extra={"user_id": user_id, "order_id": order_id},
        )

        order = await self.order_repo.get_order(order_id, user_id=user_id)
        if order is None:
            raise NotFoundError("Order not found")

        existing = await self.payment_repo.get_payment_for_order(order_id)
        if existing is not None:
            logger.warning(
                "Payment initiation rejected: payment exists",
                extra={
                    "order_id": order_id,
                    "payment_id": existing.payment_id,
                },
            )
            raise PaymentAlreadyExistsError(order_id)

        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                f"Order is not pending (status: {order.status.value})"
            )
        if order.total_amount <= 0:
            raise InvalidStateError("Order total must be positive")

        customer = await self.customer_repo.get_customer(user_id)
        if customer is None:
            raise NotFoundError("Customer not found")

        outcome = await self.gateway.create_transaction(
            GatewayTransactionRequest(
                order_reference=order.order_number,
                gross_amount=order.total_amount,
                customer=customer,
                items=order.items,
            )
        )
        if outcome.status != "created" or not outcome.token:
            logger.error(
                "Gateway transaction creation failed",
                extra={
                    "order_id": order_id,
                    "order_number": order.order_number,
                    "reason": outcome.reason,
                },
            )
            raise DependencyFailureError(
                "Failed to create payment transaction", status_code=500
            )

        now = utc_now()
        payment = Payment(
            payment_id=await self.payment_repo.generate_payment_id(),
            order_id=order.order_id,
            user_id=user_id,
            amount=order.total_amount,
            status=PaymentStatus.PENDING,
            gateway_order_id=order.order_number,
            payment_url=outcome.redirect_url,
            raw_response=outcome.raw_response,
            created_at=now,
            updated_at=now,
        )
        payment = await self.payment_repo.create_payment(payment)

        logger.info(
            "Payment created",
            extra={
                "order_id": order_id,
                "payment_id": payment.payment_id,
                "amount": str(payment.amount),
            },
        )
        return PaymentInitiation(
            payment=payment,
            token=outcome.token,
            redirect_url=outcome.redirect_url,
        )


class NotificationReconcilerUseCase:
    """
    Use case applying gateway notifications to payments and orders.

    Every notification that resolves to a payment is recorded in the
    payment's log and answered as processed, whether or not it changed any
    state, so the gateway never retries a processed notification. With
    ``strict`` set, notifications that would move a payment backwards or
    out of a final status are recorded but not applied.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        gateway: PaymentGateway,
        verify_signature: bool = False,
        strict: bool = True,
    ) -> None:
        self.payment_repo = ensure_payment_repository(payment_repo)
        self.gateway = ensure_payment_gateway(gateway)
        self.verify_signature = verify_signature
        self.strict = strict

    async def handle_notification(
        self,
        notification: PaymentNotification,
        source: Literal["webhook", "sync"] = "webhook",
    ) -> ReconciliationResult:
        """
        Apply one notification.

        Raises:
            InvalidSignatureError: signature checking is on and the webhook
                signature does not match
            PaymentNotFoundError: no payment matches the notification
        """
        logger.info(
            "Payment notification received",
            extra={
                "gateway_order_id": notification.order_id,
                "transaction_id": notification.transaction_id,
                "transaction_status": notification.transaction_status,
                "source": source,
            },
        )

        if (
            source == "webhook"
            and self.verify_signature
            and not self.gateway.verify_signature(notification)
        ):
            logger.warning(
                "Notification rejected: invalid signature",
                extra={"gateway_order_id": notification.order_id},
            )
            raise InvalidSignatureError()

        received_at = utc_now()

        def reconcile(payment: Payment, order: Order) -> ReconciliationResult:
            return reconcile_notification(
                payment,
                order,
                notification,
                received_at,
                strict=self.strict,
                source=source,
            )

        result = await self.payment_repo.apply_notification(
            notification, reconcile
        )
        if result is None:
            logger.warning(
                "Payment not found for notification",
                extra={
                    "gateway_order_id": notification.order_id,
                    "transaction_id": notification.transaction_id,
                },
            )
            raise PaymentNotFoundError(notification.order_id)

        logger.info(
            "Payment notification processed",
            extra={
                "payment_id": result.payment.payment_id,
                "order_id": result.order.order_id,
                "outcome": result.outcome,
                "reason": result.reason,
                "previous_status": result.previous_status.value,
                "payment_status": result.payment.status.value,
                "order_status": result.order.status.value,
                "order_payment_status": result.order.payment_status.value,
            },
        )
        return result


class CancelOrderUseCase:
    """
    Use case for cancelling an order and releasing its reservation.
    """

    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def cancel_order(self, user_id: str, order_id: str) -> Order:
        logger.info(
            "Order cancellation requested",
            extra={"user_id": user_id, "order_id": order_id},
        )

        order = await self.order_repo.get_order(order_id, user_id=user_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status not in CANCELLABLE_ORDER_STATUSES:
            logger.warning(
                "Cancellation rejected",
                extra={"order_id": order_id, "status": order.status.value},
            )
            raise InvalidStateError(
                f"Cannot cancel order with status: {order.status.value}"
            )

        cancelled = await self.order_repo.cancel_order(
            order_id,
            user_id,
            allowed_statuses=sorted(
                CANCELLABLE_ORDER_STATUSES, key=lambda s: s.value
            ),
            cancelled_at=utc_now(),
        )
        if cancelled is None:
            raise NotFoundError("Order not found")

        logger.info(
            "Order cancelled",
            extra={
                "order_id": order_id,
                "payment_status": cancelled.payment_status.value,
            },
        )
        return cancelled


class GetOrderUseCase:
    """
    Use case for reading the caller's orders.
    """

    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def get_order(self, user_id: str, order_id: str) -> Order:
        order = await self.order_repo.get_order(order_id, user_id=user_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def list_orders(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[OrderPaymentStatus] = None,
    ) -> List[Order]:
        orders = await self.order_repo.list_orders(
            user_id, status=status, payment_status=payment_status
        )
        logger.debug(
            "Orders listed",
            extra={"user_id": user_id, "count": len(orders)},
        )
        return orders


class GetPaymentUseCase:
    """
    Use case for reading the caller's payments.
    """

    def __init__(
        self, order_repo: OrderRepository, payment_repo: PaymentRepository
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.payment_repo = ensure_payment_repository(payment_repo)

    async def get_payment(self, user_id: str, payment_id: str) -> Payment:
        payment = await self.payment_repo.get_payment(
            payment_id, user_id=user_id
        )
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def get_payment_for_order(
        self, user_id: str, order_id: str
    ) -> Payment:
        order = await self.order_repo.get_order(order_id, user_id=user_id)
        if order is None:
            raise NotFoundError("Order not found")
        payment = await self.payment_repo.get_payment_for_order(
            order_id, user_id=user_id
        )
        if payment is None:
            raise PaymentNotFoundError(order_id)
        return payment


class PaymentSyncUseCase:
    """
    Use case re-querying the gateway for a payment's status.

    The gateway's answer is fed through the same reconciler as a webhook,
    so a sync is indistinguishable from a late notification apart from the
    ``sync`` tag on its log entry. This is the compensating action for
    missed notifications and for gateway transactions whose local payment
    write never happened.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        gateway: PaymentGateway,
        reconciler: NotificationReconcilerUseCase,
    ) -> None:
        self.payment_repo = ensure_payment_repository(payment_repo)
        self.gateway = ensure_payment_gateway(gateway)
        self.reconciler = reconciler

    async def sync_order_payment(self, order_id: str) -> ReconciliationResult:
        payment = await self.payment_repo.get_payment_for_order(order_id)
        if payment is None:
            raise PaymentNotFoundError(order_id)

        reference = payment.gateway_order_id or payment.order_id
        outcome = await self.gateway.get_status(reference)
        if outcome.status != "found" or outcome.notification is None:
            logger.error(
                "Gateway status query failed",
                extra={
                    "order_id": order_id,
                    "reference": reference,
                    "reason": outcome.reason,
                },
            )
            raise DependencyFailureError(
                "Failed to get payment status from gateway"
            )

        return await self.reconciler.handle_notification(
            outcome.notification, source="sync"
        )

    async def list_resync_candidates(
        self, older_than_minutes: int, batch_size: int
    ) -> List[str]:
        """Order IDs of payments still pending after the threshold."""
        cutoff = utc_now() - timedelta(minutes=older_than_minutes)
        payments = await self.payment_repo.list_stale_pending(
            cutoff, batch_size
        )
        logger.info(
            "Resync candidates listed",
            extra={
                "older_than_minutes": older_than_minutes,
                "count": len(payments),
            },
        )
        return [payment.order_id for payment in payments]

    async def resync_order_payment(self, order_id: str) -> str:
        """Sync one order's payment, reporting expected failures as
        ``failed`` instead of raising."""
        try:
            result = await self.sync_order_payment(order_id)
        except ShopError as e:
            logger.warning(
                "Payment resync failed",
                extra={
                    "order_id": order_id,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                },
            )
            return "failed"
        return result.outcome


class CartUseCase:
    """
    Use case for adding products to the caller's cart.
    """

    def __init__(
        self, cart_repo: CartRepository, product_repo: ProductRepository
    ) -> None:
        self.cart_repo = ensure_cart_repository(cart_repo)
        self.product_repo = ensure_product_repository(product_repo)

    async def add_item(
        self, user_id: str, product_id: str, quantity: int = 1
    ) -> CartLine:
        product = await self.product_repo.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if not product.is_active:
            raise ProductUnavailableError(product.name)

        lines = await self.cart_repo.get_lines(user_id)
        existing = next(
            (line for line in lines if line.product_id == product_id), None
        )
        requested = quantity + (existing.quantity if existing else 0)
        if requested > product.stock_quantity:
            raise InsufficientStockError(product.name, product.stock_quantity)

        line = await self.cart_repo.add_line(user_id, product_id, quantity)
        logger.info(
            "Product added to cart",
            extra={
                "user_id": user_id,
                "product_id": product_id,
                "quantity": line.quantity,
            },
        )
        return line

    async def get_cart(self, user_id: str) -> List[CartLine]:
        return await self.cart_repo.get_lines(user_id)


class ShipmentUseCase:
    """
    Use case for shipment creation and status transitions.

    Shipment status feeds back into the order: in_transit moves it to
    shipped and delivered moves it to delivered. Orders that are already
    delivered or cancelled are left alone.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        shipment_repo: ShipmentRepository,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.shipment_repo = ensure_shipment_repository(shipment_repo)

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        order = await self.order_repo.get_order(shipment.order_id)
        if order is None:
            raise NotFoundError("Order not found")

        now = utc_now()
        shipment = shipment.model_copy(
            update={
                "status": ShipmentStatus.PENDING,
                "tracking_history": [
                    TrackingEvent(
                        status=ShipmentStatus.PENDING,
                        description="Shipment created",
                        timestamp=now,
                        location=shipment.origin_address or "Origin",
                    )
                ],
                "created_at": now,
                "updated_at": now,
            }
        )
        created = await self.shipment_repo.create_shipment(shipment)
        logger.info(
            "Shipment created",
            extra={
                "shipment_id": created.shipment_id,
                "order_id": created.order_id,
                "order_status": order.status.value,
            },
        )
        return created

    async def update_status(
        self,
        shipment_id: str,
        status: ShipmentStatus,
        location: Optional[str] = None,
    ) -> Shipment:
        shipment = await self.shipment_repo.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment not found")
        if shipment.status == status:
            return shipment

        event = TrackingEvent(
            status=status,
            description=f"Status changed to {status.value}",
            timestamp=utc_now(),
            location=location or "Unknown",
        )
        updated = await self.shipment_repo.record_status(
            shipment_id, event, SHIPMENT_ORDER_STATUS.get(status)
        )
        if updated is None:
            raise NotFoundError("Shipment not found")
        return updated
