"""
Dependency injection for FastAPI endpoints.

The container builds one storage backend per process (an asyncpg pool, or a
MemoryStore when ``SHOP_STORAGE=memory``) and one payment gateway client.
Repositories are cheap wrappers around the backend and are built per
request. Tests replace any of the functions below through
``app.dependency_overrides``.
"""

import logging
from typing import Any, Dict, Literal, Optional

from asyncpg import Pool
from fastapi import Depends, Header
from pydantic import BaseModel

from shop.exceptions import AuthenticationRequiredError, PermissionDeniedError
from shop.repos.memory import (
    MemoryAddressRepository,
    MemoryCartRepository,
    MemoryCustomerRepository,
    MemoryOrderRepository,
    MemoryPaymentGateway,
    MemoryPaymentRepository,
    MemoryProductRepository,
    MemoryShipmentRepository,
    MemoryStore,
)
from shop.repos.midtrans import MidtransPaymentGateway
from shop.repos.postgresql import (
    PostgreSQLAddressRepository,
    PostgreSQLCartRepository,
    PostgreSQLCustomerRepository,
    PostgreSQLOrderRepository,
    PostgreSQLPaymentRepository,
    PostgreSQLProductRepository,
    PostgreSQLShipmentRepository,
    create_pool,
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
from shop.settings import ShopSettings, load_settings
from shop.usecase import (
    CancelOrderUseCase,
    CartUseCase,
    CheckoutUseCase,
    GetOrderUseCase,
    GetPaymentUseCase,
    NotificationReconcilerUseCase,
    PaymentInitiationUseCase,
    PaymentSyncUseCase,
    ShipmentUseCase,
)

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    """Identity asserted by the upstream authentication layer."""

    user_id: str
    role: Literal["customer", "admin"] = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class DependencyContainer:
    """
    Dependency injection container with singleton lifecycle management.
    Always creates real clients; mocks are provided by test overrides.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}

    async def get_or_create(self, key: str, factory: Any) -> Any:
        """Get or create a singleton instance."""
        if key not in self._instances:
            self._instances[key] = await factory()
        return self._instances[key]

    async def get_settings(self) -> ShopSettings:
        return await self.get_or_create(  # type: ignore[no-any-return]
            "settings", self._create_settings
        )

    async def _create_settings(self) -> ShopSettings:
        return load_settings()

    async def get_backend(self) -> Any:
        """The asyncpg pool, or the MemoryStore in memory mode."""
        return await self.get_or_create("backend", self._create_backend)

    async def _create_backend(self) -> Any:
        settings = await self.get_settings()
        if settings.storage == "memory":
            logger.warning(
                "Using in-memory storage; data is lost on restart"
            )
            return MemoryStore()

        logger.debug(
            "Creating PostgreSQL backend",
            extra={
                "min_size": settings.database_pool_min_size,
                "max_size": settings.database_pool_max_size,
            },
        )
        return await create_pool(
            settings.database_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
        )

    async def get_payment_gateway(self) -> PaymentGateway:
        return await self.get_or_create(  # type: ignore[no-any-return]
            "payment_gateway", self._create_payment_gateway
        )

    async def _create_payment_gateway(self) -> PaymentGateway:
        settings = await self.get_settings()
        if settings.storage == "memory":
            return MemoryPaymentGateway(
                server_key=settings.midtrans_server_key or "memory-server-key"
            )
        return MidtransPaymentGateway(
            server_key=settings.midtrans_server_key,
            sandbox=settings.midtrans_sandbox,
            timeout=settings.gateway_timeout_seconds,
        )

    async def close(self) -> None:
        gateway = self._instances.pop("payment_gateway", None)
        if isinstance(gateway, MidtransPaymentGateway):
            await gateway.aclose()
        backend = self._instances.pop("backend", None)
        if isinstance(backend, Pool):
            await backend.close()
            logger.info("PostgreSQL pool closed")


# Global container instance
_container = DependencyContainer()


def get_container() -> DependencyContainer:
    return _container


async def _build(memory_cls: Any, postgresql_cls: Any) -> Any:
    backend = await _container.get_backend()
    if isinstance(backend, MemoryStore):
        return memory_cls(backend)
    return postgresql_cls(backend)


async def get_settings() -> ShopSettings:
    """FastAPI dependency for application settings."""
    return await _container.get_settings()


async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    """FastAPI dependency reading the caller's identity headers."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequiredError()
    # Unknown roles get customer access.
    is_admin = (x_user_role or "").strip().lower() == "admin"
    return CurrentUser(
        user_id=x_user_id.strip(), role="admin" if is_admin else "customer"
    )


async def require_admin(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """FastAPI dependency restricting a route to admins."""
    if not user.is_admin:
        logger.warning(
            "Admin route rejected", extra={"user_id": user.user_id}
        )
        raise PermissionDeniedError()
    return user


async def get_address_repository() -> AddressRepository:
    return await _build(MemoryAddressRepository, PostgreSQLAddressRepository)  # type: ignore[no-any-return]


async def get_customer_repository() -> CustomerRepository:
    return await _build(MemoryCustomerRepository, PostgreSQLCustomerRepository)  # type: ignore[no-any-return]


async def get_product_repository() -> ProductRepository:
    return await _build(MemoryProductRepository, PostgreSQLProductRepository)  # type: ignore[no-any-return]


async def get_cart_repository() -> CartRepository:
    return await _build(MemoryCartRepository, PostgreSQLCartRepository)  # type: ignore[no-any-return]


async def get_order_repository() -> OrderRepository:
    return await _build(MemoryOrderRepository, PostgreSQLOrderRepository)  # type: ignore[no-any-return]


async def get_payment_repository() -> PaymentRepository:
    return await _build(MemoryPaymentRepository, PostgreSQLPaymentRepository)  # type: ignore[no-any-return]


async def get_shipment_repository() -> ShipmentRepository:
    return await _build(MemoryShipmentRepository, PostgreSQLShipmentRepository)  # type: ignore[no-any-return]


async def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency for the payment gateway client."""
    return await _container.get_payment_gateway()


async def get_checkout_use_case(
    address_repo: AddressRepository = Depends(get_address_repository),
    cart_repo: CartRepository = Depends(get_cart_repository),
    order_repo: OrderRepository = Depends(get_order_repository),
    settings: ShopSettings = Depends(get_settings),
) -> CheckoutUseCase:
    """FastAPI dependency for CheckoutUseCase."""
    return CheckoutUseCase(
        address_repo=address_repo,
        cart_repo=cart_repo,
        order_repo=order_repo,
        max_order_number_attempts=settings.order_number_max_attempts,
    )


async def get_payment_initiation_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    payment_repo: PaymentRepository = Depends(get_payment_repository),
    customer_repo: CustomerRepository = Depends(get_customer_repository),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentInitiationUseCase:
    """FastAPI dependency for PaymentInitiationUseCase."""
    return PaymentInitiationUseCase(
        order_repo=order_repo,
        payment_repo=payment_repo,
        customer_repo=customer_repo,
        gateway=gateway,
    )


async def get_notification_reconciler_use_case(
    payment_repo: PaymentRepository = Depends(get_payment_repository),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: ShopSettings = Depends(get_settings),
) -> NotificationReconcilerUseCase:
    """FastAPI dependency for NotificationReconcilerUseCase."""
    return NotificationReconcilerUseCase(
        payment_repo=payment_repo,
        gateway=gateway,
        verify_signature=settings.webhook_verify_signature,
        strict=settings.strict_notification_ordering,
    )


async def get_cancel_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
) -> CancelOrderUseCase:
    return CancelOrderUseCase(order_repo=order_repo)


async def get_get_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
) -> GetOrderUseCase:
    return GetOrderUseCase(order_repo=order_repo)


async def get_get_payment_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    payment_repo: PaymentRepository = Depends(get_payment_repository),
) -> GetPaymentUseCase:
    return GetPaymentUseCase(order_repo=order_repo, payment_repo=payment_repo)


async def get_payment_sync_use_case(
    payment_repo: PaymentRepository = Depends(get_payment_repository),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    reconciler: NotificationReconcilerUseCase = Depends(
        get_notification_reconciler_use_case
    ),
) -> PaymentSyncUseCase:
    """FastAPI dependency for PaymentSyncUseCase."""
    return PaymentSyncUseCase(
        payment_repo=payment_repo, gateway=gateway, reconciler=reconciler
    )


async def get_cart_use_case(
    cart_repo: CartRepository = Depends(get_cart_repository),
    product_repo: ProductRepository = Depends(get_product_repository),
) -> CartUseCase:
    return CartUseCase(cart_repo=cart_repo, product_repo=product_repo)


async def get_shipment_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    shipment_repo: ShipmentRepository = Depends(get_shipment_repository),
) -> ShipmentUseCase:
    return ShipmentUseCase(order_repo=order_repo, shipment_repo=shipment_repo)
