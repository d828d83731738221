import asyncio
from decimal import Decimal

import pytest

from storefront.application.create_order import CreateOrderDTO, CreateOrderUseCase
from storefront.domain.exceptions import (
    CouponLimitReachedError, EmptyCartError, InsufficientStockError, InvalidAddressError, ProductNotFoundError,
    ShippingMethodNotFoundError,
)
from storefront.domain.models import CartLine, DiscountType, Order, OrderStatus, PaymentStatus
from storefront.infrastructure.repositories import SQLAlchemyOrderRepository


def dto(checkout, lines=None, **overrides):
    data = {
        "user_id": checkout["user_id"],
        "shipping_address_id": checkout["address_id"],
        "billing_address_id": checkout["address_id"],
        "payment_method": "card",
        "shipping_method_id": checkout["method_id"],
        "lines": lines,
    }
    data.update(overrides)
    return CreateOrderDTO(**data)


def line(product_id, quantity):
    return CartLine(product_id=product_id, quantity=quantity)


@pytest.fixture
def create_order(uow):
    return CreateOrderUseCase(uow, Decimal("10.00"), surcharge=None)


class TestCreateOrder:
    async def test_prices_order_and_reserves_stock(self, create_order, checkout, store):
        order = await create_order(dto(checkout, [line(checkout["product_id"], 2)]))

        assert order.subtotal == Decimal("20.00")
        assert order.discount_amount == Decimal("0")
        assert order.shipping_cost == Decimal("5.00")
        assert order.tax_amount == Decimal("2.00")
        assert order.total_amount == Decimal("27.00")
        assert order.order_status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert await store.stock(checkout["product_id"]) == 3

    async def test_items_freeze_price(self, create_order, checkout):
        order = await create_order(dto(checkout, [line(checkout["product_id"], 2)]))

        assert len(order.items) == 1
        item = order.items[0]
        assert item.unit_price == Decimal("10.00")
        assert item.total_price == item.unit_price * item.quantity
        assert order.shipping_address.id == checkout["address_id"]
        assert order.billing_address.id == checkout["address_id"]

    async def test_percentage_coupon(self, create_order, checkout, store):
        coupon_id = await store.add_coupon("SAVE10", DiscountType.PERCENTAGE, "10")

        order = await create_order(dto(checkout, [line(checkout["product_id"], 2)], coupon_code="SAVE10"))

        assert order.discount_amount == Decimal("2.00")
        assert order.tax_amount == Decimal("1.80")
        assert order.total_amount == Decimal("24.80")
        assert order.coupons == ["SAVE10"]
        assert await store.used_count(coupon_id) == 1

    async def test_invalid_coupon_is_ignored(self, create_order, checkout, store):
        coupon_id = await store.add_coupon("USED", usage_limit=1, used_count=1)

        order = await create_order(dto(checkout, [line(checkout["product_id"], 2)], coupon_code="USED"))
        assert order.discount_amount == Decimal("0")
        assert order.coupons == []
        assert await store.used_count(coupon_id) == 1

        order = await create_order(dto(checkout, [line(checkout["product_id"], 1)], coupon_code="NOPE"))
        assert order.total_amount == Decimal("16.00")

    async def test_egypt_tax_and_surcharge(self, uow, store):
        product_id = await store.add_product(price="10.00", stock=5, weight=1.0)
        address_id = await store.add_address("user-eg", country="Egypt", state=None, postal_code="11511")
        method_id = await store.add_method("Standard Shipping")
        await store.add_rate(method_id, "24.95", country="", min_weight=0, max_weight=10)
        await store.add_tax_rate("Egypt", "0.20")
        create_order = CreateOrderUseCase(uow, Decimal("10.00"))

        order = await create_order(CreateOrderDTO(
            user_id="user-eg",
            shipping_address_id=address_id,
            billing_address_id=address_id,
            payment_method="cash",
            shipping_method_id=method_id,
            lines=[line(product_id, 2)],
        ))

        assert order.tax_amount == Decimal("2.80")
        assert order.shipping_cost == Decimal("54.95")
        assert order.total_amount == Decimal("77.75")

    async def test_flat_shipping_without_method(self, create_order, checkout):
        order = await create_order(dto(checkout, [line(checkout["product_id"], 2)], shipping_method_id=None))
        assert order.shipping_cost == Decimal("10.00")
        assert order.total_amount == Decimal("32.00")

    async def test_method_default_cost_when_no_rate_matches(self, create_order, checkout, store):
        method_id = await store.add_method("Express Shipping", default_cost="20.00")
        await store.add_rate(method_id, "18.95", country="CA")

        order = await create_order(dto(checkout, [line(checkout["product_id"], 1)], shipping_method_id=method_id))
        assert order.shipping_cost == Decimal("20.00")

    async def test_free_shipping_threshold(self, create_order, checkout, store):
        product_id = await store.add_product(price="25.00", stock=3, free_shipping_threshold="20.00")

        order = await create_order(dto(checkout, [line(product_id, 1)]))
        assert order.shipping_cost == Decimal("0")
        assert order.total_amount == Decimal("27.50")

    async def test_lines_from_cart_and_cart_cleared(self, create_order, checkout, store):
        await store.add_cart_line(checkout["user_id"], checkout["product_id"], 2)

        order = await create_order(dto(checkout))

        assert [(i.product_id, i.quantity) for i in order.items] == [(checkout["product_id"], 2)]
        assert await store.cart_size(checkout["user_id"]) == 0

    async def test_duplicate_lines_are_merged(self, create_order, checkout, store):
        order = await create_order(dto(checkout, [
            line(checkout["product_id"], 1),
            line(checkout["product_id"], 2),
        ]))
        assert len(order.items) == 1
        assert order.items[0].quantity == 3
        assert await store.stock(checkout["product_id"]) == 2


class TestCreateOrderRejections:
    async def test_empty_cart(self, create_order, checkout, store):
        with pytest.raises(EmptyCartError):
            await create_order(dto(checkout))
        assert await store.order_count() == 0

    async def test_foreign_address(self, create_order, checkout, store):
        other_address = await store.add_address("user-2")
        with pytest.raises(InvalidAddressError):
            await create_order(dto(checkout, [line(checkout["product_id"], 1)], billing_address_id=other_address))
        assert await store.stock(checkout["product_id"]) == 5

    async def test_missing_product(self, create_order, checkout):
        with pytest.raises(ProductNotFoundError) as exc:
            await create_order(dto(checkout, [line("missing", 1)]))
        assert exc.value.product_id == "missing"

    async def test_insufficient_stock_mutates_nothing(self, create_order, checkout, store):
        scarce = await store.add_product(price="4.00", stock=2)
        with pytest.raises(InsufficientStockError) as exc:
            await create_order(dto(checkout, [line(checkout["product_id"], 1), line(scarce, 3)]))

        assert exc.value.product_id == scarce
        assert exc.value.available == 2
        assert await store.stock(checkout["product_id"]) == 5
        assert await store.stock(scarce) == 2
        assert await store.order_count() == 0

    async def test_inactive_shipping_method(self, create_order, checkout, store):
        method_id = await store.add_method("Old Shipping", is_active=False)
        with pytest.raises(ShippingMethodNotFoundError):
            await create_order(dto(checkout, [line(checkout["product_id"], 1)], shipping_method_id=method_id))

    async def test_last_unit_sells_once(self, create_order, checkout, store):
        product_id = await store.add_product(stock=1)
        other_address = await store.add_address("user-2")

        await create_order(dto(checkout, [line(product_id, 1)]))
        with pytest.raises(InsufficientStockError):
            await create_order(dto(
                checkout, [line(product_id, 1)], user_id="user-2",
                shipping_address_id=other_address, billing_address_id=other_address,
            ))

        assert await store.stock(product_id) == 0
        assert await store.order_count() == 1

    async def test_failure_after_reservation_rolls_back(self, create_order, checkout, store, monkeypatch):
        coupon_id = await store.add_coupon("SAVE10")
        await store.add_cart_line(checkout["user_id"], checkout["product_id"], 2)

        async def failing_create(self, order, items, coupon_ids):
            raise RuntimeError("insert failed")

        monkeypatch.setattr(SQLAlchemyOrderRepository, "create", failing_create)

        with pytest.raises(RuntimeError):
            await create_order(dto(checkout, coupon_code="SAVE10"))

        assert await store.stock(checkout["product_id"]) == 5
        assert await store.used_count(coupon_id) == 0
        assert await store.cart_size(checkout["user_id"]) == 1
        assert await store.order_count() == 0


class TestConcurrentOrders:
    async def test_parallel_orders_for_last_unit(self, create_order, checkout, store):
        product_id = await store.add_product(stock=1)

        results = await asyncio.gather(
            *(create_order(dto(checkout, [line(product_id, 1)])) for _ in range(5)),
            return_exceptions=True,
        )

        orders = [r for r in results if isinstance(r, Order)]
        assert len(orders) == 1
        assert all(isinstance(r, InsufficientStockError) for r in results if not isinstance(r, Order))
        assert await store.stock(product_id) == 0
        assert await store.order_count() == 1

    async def test_parallel_orders_respect_coupon_limit(self, create_order, checkout, store):
        coupon_id = await store.add_coupon("LIMITED", usage_limit=2)

        results = await asyncio.gather(
            *(create_order(dto(checkout, [line(checkout["product_id"], 1)], coupon_code="LIMITED"))
              for _ in range(5)),
            return_exceptions=True,
        )

        assert all(isinstance(r, (Order, CouponLimitReachedError)) for r in results)
        with_coupon = [r for r in results if isinstance(r, Order) and r.coupons == ["LIMITED"]]
        assert len(with_coupon) == 2
        assert await store.used_count(coupon_id) == 2
