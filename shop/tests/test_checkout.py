"""
Tests for CheckoutUseCase.

Checkout runs against the memory repositories so that the atomicity of the
order write (order, stock, cart) is exercised for real.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from shop.domain import OrderAdjustments, OrderStatus
from shop.exceptions import (
    CartChangedError,
    EmptyCartError,
    InsufficientStockError,
    NotFoundError,
    OrderNumberExhaustedError,
    ProductUnavailableError,
)
from shop.repos.memory import (
    MemoryAddressRepository,
    MemoryCartRepository,
    MemoryOrderRepository,
    MemoryStore,
)
from shop.tests.factories import AddressFactory, OrderFactory, add_cart_line
from shop.usecase import CheckoutUseCase


class YieldingCartRepository(MemoryCartRepository):
    """Suspends after reading, as a networked store does, so that concurrent
    checkouts interleave between their reads and their writes."""

    async def get_lines(self, *args, **kwargs):  # type: ignore
        lines = await super().get_lines(*args, **kwargs)
        await asyncio.sleep(0)
        return lines


@pytest.fixture
def use_case(
    address_repo: MemoryAddressRepository,
    cart_repo: MemoryCartRepository,
    order_repo: MemoryOrderRepository,
) -> CheckoutUseCase:
    return CheckoutUseCase(
        address_repo=address_repo, cart_repo=cart_repo, order_repo=order_repo
    )


class TestCheckout:
    @pytest.mark.asyncio
    async def test_checkout_creates_order_and_reserves_stock(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 2)
        add_cart_line(store, "prod-2", 1)

        order = await use_case.checkout(
            "user-1", "addr-1", shipping_method="JNE REG", notes="Ring bell"
        )

        assert order.status == OrderStatus.PENDING
        assert order.subtotal == Decimal("125000.00")
        assert order.total_amount == Decimal("125000.00")
        assert order.shipping_method == "JNE REG"
        assert order.order_number.startswith("ORD-")
        assert {item.product_id for item in order.items} == {
            "prod-1",
            "prod-2",
        }
        assert store.products["prod-1"].stock_quantity == 8
        assert store.products["prod-2"].stock_quantity == 4
        assert store.cart_lines == {}
        assert order.order_id in store.orders

    @pytest.mark.asyncio
    async def test_checkout_consumes_only_selected_lines(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        selected = add_cart_line(store, "prod-1", 1)
        kept = add_cart_line(store, "prod-2", 1)

        order = await use_case.checkout(
            "user-1", "addr-1", cart_line_ids=[selected.cart_line_id]
        )

        assert [item.product_id for item in order.items] == ["prod-1"]
        assert list(store.cart_lines) == [kept.cart_line_id]
        assert store.products["prod-2"].stock_quantity == 5

    @pytest.mark.asyncio
    async def test_checkout_uses_pricing_policy(
        self,
        address_repo: MemoryAddressRepository,
        cart_repo: MemoryCartRepository,
        order_repo: MemoryOrderRepository,
        store: MemoryStore,
    ) -> None:
        add_cart_line(store, "prod-1", 1)
        use_case = CheckoutUseCase(
            address_repo=address_repo,
            cart_repo=cart_repo,
            order_repo=order_repo,
            pricing_policy=lambda subtotal, items: OrderAdjustments(
                shipping_cost=Decimal("15000"),
                discount_amount=Decimal("5000"),
            ),
        )

        order = await use_case.checkout("user-1", "addr-1")

        assert order.subtotal == Decimal("50000.00")
        assert order.total_amount == Decimal("60000.00")

    @pytest.mark.asyncio
    async def test_address_of_another_user_is_not_found(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        store.add_address(AddressFactory(address_id="addr-2", user_id="u-2"))
        add_cart_line(store, "prod-1", 1)

        with pytest.raises(NotFoundError, match="Address not found"):
            await use_case.checkout("user-1", "addr-2")

        assert store.orders == {}
        assert store.products["prod-1"].stock_quantity == 10

    @pytest.mark.asyncio
    async def test_inactive_address_is_not_found(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        store.addresses["addr-1"].is_active = False
        add_cart_line(store, "prod-1", 1)

        with pytest.raises(NotFoundError):
            await use_case.checkout("user-1", "addr-1")

    @pytest.mark.asyncio
    async def test_empty_cart_is_rejected(
        self, use_case: CheckoutUseCase
    ) -> None:
        with pytest.raises(EmptyCartError, match="Cart is empty"):
            await use_case.checkout("user-1", "addr-1")

    @pytest.mark.asyncio
    async def test_unknown_selected_lines_mean_empty_cart(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 1)

        with pytest.raises(EmptyCartError):
            await use_case.checkout(
                "user-1", "addr-1", cart_line_ids=["missing"]
            )

    @pytest.mark.asyncio
    async def test_insufficient_stock_writes_nothing(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        add_cart_line(store, "prod-1", 11)

        with pytest.raises(InsufficientStockError) as exc_info:
            await use_case.checkout("user-1", "addr-1")

        assert exc_info.value.message == (
            "Insufficient stock for product Kopi. Available: 10"
        )
        assert exc_info.value.status_code == 400
        assert store.orders == {}
        assert store.products["prod-1"].stock_quantity == 10
        assert len(store.cart_lines) == 1

    @pytest.mark.asyncio
    async def test_inactive_product_is_unavailable(
        self, use_case: CheckoutUseCase, store: MemoryStore
    ) -> None:
        store.products["prod-2"].is_active = False
        add_cart_line(store, "prod-2", 1)

        with pytest.raises(ProductUnavailableError, match="Teh"):
            await use_case.checkout("user-1", "addr-1")

    @pytest.mark.asyncio
    async def test_order_number_collision_is_retried(
        self,
        use_case: CheckoutUseCase,
        order_repo: MemoryOrderRepository,
        store: MemoryStore,
    ) -> None:
        existing = OrderFactory(order_number="ORD-1-001")
        store.orders[existing.order_id] = existing
        add_cart_line(store, "prod-1", 1)
        order_repo.generate_order_number = AsyncMock(  # type: ignore
            side_effect=["ORD-1-001", "ORD-1-002"]
        )

        order = await use_case.checkout("user-1", "addr-1")

        assert order.order_number == "ORD-1-002"
        assert order_repo.generate_order_number.await_count == 2
        assert store.products["prod-1"].stock_quantity == 9

    @pytest.mark.asyncio
    async def test_order_number_attempts_are_bounded(
        self,
        address_repo: MemoryAddressRepository,
        cart_repo: MemoryCartRepository,
        order_repo: MemoryOrderRepository,
        store: MemoryStore,
    ) -> None:
        existing = OrderFactory(order_number="ORD-1-001")
        store.orders[existing.order_id] = existing
        add_cart_line(store, "prod-1", 1)
        order_repo.generate_order_number = AsyncMock(  # type: ignore
            return_value="ORD-1-001"
        )
        use_case = CheckoutUseCase(
            address_repo=address_repo,
            cart_repo=cart_repo,
            order_repo=order_repo,
            max_order_number_attempts=3,
        )

        with pytest.raises(OrderNumberExhaustedError):
            await use_case.checkout("user-1", "addr-1")

        assert order_repo.generate_order_number.await_count == 3
        assert len(store.orders) == 1
        assert store.products["prod-1"].stock_quantity == 10

    @pytest.mark.asyncio
    async def test_concurrent_checkouts_never_oversell(
        self,
        address_repo: MemoryAddressRepository,
        order_repo: MemoryOrderRepository,
        store: MemoryStore,
    ) -> None:
        store.add_address(
            AddressFactory(address_id="addr-2", user_id="user-2")
        )
        add_cart_line(store, "prod-2", 5, user_id="user-1")
        add_cart_line(store, "prod-2", 5, user_id="user-2")
        order_repo.place_order = AsyncMock(  # type: ignore
            wraps=order_repo.place_order
        )
        use_case = CheckoutUseCase(
            address_repo=address_repo,
            cart_repo=YieldingCartRepository(store),
            order_repo=order_repo,
        )

        results = await asyncio.gather(
            use_case.checkout("user-1", "addr-1"),
            use_case.checkout("user-2", "addr-2"),
            return_exceptions=True,
        )

        assert order_repo.place_order.await_count == 2
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStockError)
        assert len(store.orders) == 1
        assert store.products["prod-2"].stock_quantity == 0

    @pytest.mark.asyncio
    async def test_concurrent_checkouts_of_one_cart_place_one_order(
        self,
        address_repo: MemoryAddressRepository,
        order_repo: MemoryOrderRepository,
        store: MemoryStore,
    ) -> None:
        add_cart_line(store, "prod-1", 2)
        use_case = CheckoutUseCase(
            address_repo=address_repo,
            cart_repo=YieldingCartRepository(store),
            order_repo=order_repo,
        )

        results = await asyncio.gather(
            use_case.checkout("user-1", "addr-1"),
            use_case.checkout("user-1", "addr-1"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], CartChangedError)
        assert failures[0].status_code == 409
        assert len(store.orders) == 1
        assert store.products["prod-1"].stock_quantity == 8
        assert store.cart_lines == {}


class TestCheckoutWiring:
    def test_invalid_repository_is_rejected(
        self,
        cart_repo: MemoryCartRepository,
        order_repo: MemoryOrderRepository,
    ) -> None:
        from shop.validation import RepositoryValidationError

        with pytest.raises(RepositoryValidationError):
            CheckoutUseCase(
                address_repo=object(),  # type: ignore[arg-type]
                cart_repo=cart_repo,
                order_repo=order_repo,
            )
