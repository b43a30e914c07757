"""
Repository interfaces defined as Protocols.

All repository operations in this module follow these principles:

- **Atomic Units**: Operations that touch several rows (placing an order,
  cancelling an order, applying a notification, creating a shipment) are a
  single all-or-nothing unit. If any step raises, no step's effect is
  observable afterwards.

- **Guarded Mutation**: Stock is never read-then-written. Reservations are
  expressed as a conditional "decrement if sufficient" so that stock can
  never go negative, whatever the interleaving of concurrent callers.

- **Soft Delete**: Rows carrying a ``deleted_at`` timestamp are invisible to
  every query below.

- **Domain Objects**: Methods accept and return domain objects or
  primitives, never driver-specific types.

Architectural Notes:

- These are pure interfaces with no implementation details
- Use case classes depend on these protocols, not concrete implementations
- Repository implementations are free to be non-deterministic (generate
  IDs, read the clock, make network calls)
- Ownership filtering is done here: passing a ``user_id`` restricts the
  lookup to rows owned by that user, and a row owned by someone else is
  reported exactly like a missing row
"""

from datetime import datetime
from typing import (
    Callable,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from shop.domain import (
    Address,
    CartLine,
    Customer,
    GatewayStatusOutcome,
    GatewayTransactionOutcome,
    GatewayTransactionRequest,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentNotification,
    Product,
    ReconciliationResult,
    Shipment,
    TrackingEvent,
)

Reconciler = Callable[[Payment, Order], ReconciliationResult]


@runtime_checkable
class AddressRepository(Protocol):
    """Read access to customer delivery addresses."""

    async def get_active_address(
        self, address_id: str, user_id: str
    ) -> Optional[Address]:
        """Return the address if it exists, is active and belongs to the
        user; None otherwise."""
        ...


@runtime_checkable
class CustomerRepository(Protocol):
    """Read access to customer contact details."""

    async def get_customer(self, user_id: str) -> Optional[Customer]: ...


@runtime_checkable
class ProductRepository(Protocol):
    """Read access to the product catalog."""

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Retrieve a product that has not been soft-deleted.

        Inactive products are returned; callers decide how to treat them.
        """
        ...


@runtime_checkable
class CartRepository(Protocol):
    """Per-user cart lines, unique per (user, product)."""

    async def get_lines(
        self, user_id: str, cart_line_ids: Optional[Sequence[str]] = None
    ) -> List[CartLine]:
        """Load the user's cart lines with their live product attached.

        Args:
            user_id: Owner of the cart
            cart_line_ids: Restrict to these lines, or None for all lines

        Returns:
            Lines owned by the user, oldest first. Identifiers that do not
            name one of the user's lines are silently skipped.
        """
        ...

    async def add_line(
        self, user_id: str, product_id: str, quantity: int
    ) -> CartLine:
        """Create the (user, product) line or increment its quantity.

        Returns:
            The resulting line with its product attached.
        """
        ...


@runtime_checkable
class OrderRepository(Protocol):
    """Order aggregate persistence, including the inventory ledger moves
    that belong to placing and cancelling an order."""

    async def generate_order_id(self) -> str: ...

    async def generate_order_number(self) -> str:
        """Generate a candidate order number.

        Implementation Notes:
        - Candidates are random and may collide; uniqueness is enforced by
          place_order, which raises OrderNumberTakenError on collision
        """
        ...

    async def place_order(
        self, order: Order, cart_line_ids: Sequence[str]
    ) -> Order:
        """Persist a new order and consume the cart lines it was built from.

        In one atomic unit: insert the order header and its line items,
        decrement each product's stock by the line quantity, and delete the
        consumed cart lines.

        Args:
            order: Fully built order in state (pending, pending)
            cart_line_ids: The cart lines the order was built from

        Returns:
            The stored order

        Raises:
            OrderNumberTakenError: order_number is already in use
            InsufficientStockError: a guarded decrement found too little
                stock (a concurrent checkout won the race)
            ProductUnavailableError: a product was deactivated or deleted
                since the order was built
            CartChangedError: a cart line is gone, belongs to someone else,
                or no longer holds the product and quantity the order was
                built from (a concurrent checkout consumed it first)

        Implementation Notes:
        - The stock decrement must be a conditional update, never
          read-then-write
        - Cart lines are consumed with a conditional delete whose row
          count is checked, never unconditionally
        - On any failure nothing is written
        """
        ...

    async def get_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Optional[Order]:
        """Retrieve an order by ID, restricted to the owner when given."""
        ...

    async def list_orders(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[OrderPaymentStatus] = None,
    ) -> List[Order]:
        """List the user's orders, newest first."""
        ...

    async def cancel_order(
        self,
        order_id: str,
        user_id: str,
        allowed_statuses: Sequence[OrderStatus],
        cancelled_at: datetime,
    ) -> Optional[Order]:
        """Cancel an owned order and release its reservation.

        In one atomic unit: move the order to cancelled (only if its status
        is still one of allowed_statuses), set payment_status to failed if
        it was pending, and add every line item's quantity back to its
        product's stock.

        Returns:
            The cancelled order, or None when the order does not exist or
            is not owned by the user

        Raises:
            InvalidStateError: the order's status is not in
                allowed_statuses at the time of the update
        """
        ...


@runtime_checkable
class PaymentRepository(Protocol):
    """Payment record persistence, one payment per order."""

    async def generate_payment_id(self) -> str: ...

    async def create_payment(self, payment: Payment) -> Payment:
        """Insert a new payment.

        Raises:
            PaymentAlreadyExistsError: the order already has a payment
        """
        ...

    async def get_payment(
        self, payment_id: str, user_id: Optional[str] = None
    ) -> Optional[Payment]: ...

    async def get_payment_for_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Optional[Payment]: ...

    async def apply_notification(
        self, notification: PaymentNotification, reconcile: Reconciler
    ) -> Optional[ReconciliationResult]:
        """Resolve the payment a notification refers to and apply it.

        Lookup tries, in order: internal order id, gateway order id,
        gateway transaction id. The matched payment and its order are
        locked for the duration, passed to ``reconcile`` and the returned
        payment and order are written back, all in one atomic unit.

        Args:
            notification: Parsed gateway notification
            reconcile: Pure function computing the new payment and order

        Returns:
            The reconciliation result, or None if no payment matched (in
            which case nothing is written)

        Implementation Notes:
        - Concurrent notifications for the same payment must serialize on
          the payment row; each one re-reads current state
        """
        ...

    async def list_stale_pending(
        self, older_than: datetime, limit: int
    ) -> List[Payment]:
        """Pending payments created before ``older_than``, oldest first.

        Payments of cancelled orders are left out: their order is closed and
        a late paid status would only be recorded, never applied.
        """
        ...


@runtime_checkable
class ShipmentRepository(Protocol):
    """Shipment persistence and the order status moves it drives."""

    async def generate_shipment_id(self) -> str: ...

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        """Insert a shipment and move a confirmed order to processing.

        Raises:
            DuplicateShipmentError: the order already has a shipment
            DuplicateTrackingNumberError: the tracking number is taken
        """
        ...

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]: ...

    async def record_status(
        self,
        shipment_id: str,
        event: TrackingEvent,
        order_status: Optional[OrderStatus],
    ) -> Optional[Shipment]:
        """Move a shipment to ``event.status`` and append the event.

        When ``order_status`` is given the shipment's order is moved to it
        in the same atomic unit, unless the order is already delivered or
        cancelled. Moving an order to delivered stamps delivered_at, and a
        delivered shipment stamps actual_delivery.

        Returns:
            The updated shipment, or None if it does not exist
        """
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    """External payment gateway client.

    Architectural Context:
    The gateway is an external collaborator. Failures are reported as
    outcome objects carrying an opaque reason, never as exceptions the
    core depends on.
    """

    async def create_transaction(
        self, request: GatewayTransactionRequest
    ) -> GatewayTransactionOutcome:
        """Create a transaction keyed by the order reference.

        Returns:
            'created' with token, redirect URL and the raw response, or
            'failed' with a reason (network error, timeout, 4xx/5xx)
        """
        ...

    async def get_status(self, reference: str) -> GatewayStatusOutcome:
        """Query the status of the transaction for an order reference.

        Returns:
            'found' with the status shaped as a notification, or 'failed'
            with a reason
        """
        ...

    def verify_signature(self, notification: PaymentNotification) -> bool:
        """Check the notification's signature_key against the server key."""
        ...
