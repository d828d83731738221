from decimal import Decimal

import pytest
from sqlalchemy import event

from storefront.application.cancel_order import CancelOrderUseCase
from storefront.application.create_order import CreateOrderDTO, CreateOrderUseCase
from storefront.application.get_order import GetOrderUseCase, ListOrdersUseCase
from storefront.application.update_order_status import UpdateOrderStatusDTO, UpdateOrderStatusUseCase
from storefront.domain.exceptions import ForbiddenError, NotCancellableError, OrderNotFoundError
from storefront.domain.models import CartLine, OrderStatus, PaymentStatus


@pytest.fixture
def place_order(uow, checkout):
    create_order = CreateOrderUseCase(uow, Decimal("10.00"), surcharge=None)

    async def place(quantity=2, coupon_code=None):
        return await create_order(CreateOrderDTO(
            user_id=checkout["user_id"],
            shipping_address_id=checkout["address_id"],
            billing_address_id=checkout["address_id"],
            payment_method="card",
            shipping_method_id=checkout["method_id"],
            coupon_code=coupon_code,
            lines=[CartLine(product_id=checkout["product_id"], quantity=quantity)],
        ))

    return place


@pytest.fixture
def cancel(uow):
    return CancelOrderUseCase(uow)


@pytest.fixture
def set_status(uow):
    update = UpdateOrderStatusUseCase(uow)

    async def apply(order_id, order_status=None, payment_status=None):
        return await update(UpdateOrderStatusDTO(
            order_id=order_id, order_status=order_status, payment_status=payment_status
        ))

    return apply


class TestCancelOrder:
    async def test_cancel_restores_stock(self, place_order, cancel, checkout, store):
        order = await place_order(quantity=2)
        assert await store.stock(checkout["product_id"]) == 3

        cancelled = await cancel(order.id, checkout["user_id"])

        assert cancelled.order_status == OrderStatus.CANCELLED
        assert cancelled.payment_status == PaymentStatus.FAILED
        assert await store.stock(checkout["product_id"]) == 5

    async def test_cancel_keeps_coupon_usage(self, place_order, cancel, checkout, store):
        coupon_id = await store.add_coupon("SAVE10")
        order = await place_order(coupon_code="SAVE10")

        await cancel(order.id, checkout["user_id"])

        assert await store.used_count(coupon_id) == 1

    async def test_paid_order_is_refunded(self, place_order, cancel, set_status, checkout):
        order = await place_order()
        await set_status(order.id, OrderStatus.CONFIRMED, PaymentStatus.PAID)

        cancelled = await cancel(order.id, checkout["user_id"])

        assert cancelled.payment_status == PaymentStatus.REFUNDED

    async def test_shipped_order_is_not_cancellable(self, place_order, cancel, set_status, checkout, store):
        order = await place_order()
        await set_status(order.id, OrderStatus.SHIPPED)

        with pytest.raises(NotCancellableError):
            await cancel(order.id, checkout["user_id"])
        assert await store.stock(checkout["product_id"]) == 3

    async def test_second_cancel_is_rejected(self, place_order, cancel, checkout, store):
        order = await place_order()
        await cancel(order.id, checkout["user_id"])

        with pytest.raises(NotCancellableError):
            await cancel(order.id, checkout["user_id"])
        assert await store.stock(checkout["product_id"]) == 5

    async def test_foreign_order(self, place_order, cancel):
        order = await place_order()
        with pytest.raises(ForbiddenError):
            await cancel(order.id, "someone-else")

    async def test_missing_order(self, cancel):
        with pytest.raises(OrderNotFoundError):
            await cancel("missing", "user-1")


class TestOrderQueries:
    async def test_get_order_checks_owner(self, uow, place_order, checkout):
        order = await place_order()
        get_order = GetOrderUseCase(uow)

        assert (await get_order(order.id, checkout["user_id"])).id == order.id
        assert (await get_order(order.id)).id == order.id
        with pytest.raises(ForbiddenError):
            await get_order(order.id, "someone-else")

    async def test_list_orders_paginates(self, uow, place_order, checkout):
        for _ in range(3):
            await place_order(quantity=1)
        list_orders = ListOrdersUseCase(uow)

        page = await list_orders(user_id=checkout["user_id"], page=1, limit=2)
        assert page.total == 3
        assert page.pages == 2
        assert len(page.orders) == 2

        page = await list_orders(user_id="someone-else")
        assert page.total == 0

    async def test_admin_filter_by_status(self, uow, place_order, set_status):
        first = await place_order(quantity=1)
        await place_order(quantity=1)
        await set_status(first.id, OrderStatus.SHIPPED)

        page = await ListOrdersUseCase(uow)(order_status=OrderStatus.SHIPPED)
        assert [o.id for o in page.orders] == [first.id]

    async def test_admin_transitions_are_unconstrained(self, place_order, set_status):
        order = await place_order()
        updated = await set_status(order.id, OrderStatus.DELIVERED)
        assert updated.order_status == OrderStatus.DELIVERED
        updated = await set_status(order.id, OrderStatus.PENDING)
        assert updated.order_status == OrderStatus.PENDING

    async def test_update_missing_order(self, set_status):
        with pytest.raises(OrderNotFoundError):
            await set_status("missing", OrderStatus.CONFIRMED)

    async def test_list_orders_query_count_does_not_grow_with_page(self, uow, engine, place_order, store, checkout):
        await store.add_coupon("SAVE10")
        await place_order(quantity=1, coupon_code="SAVE10")
        for _ in range(3):
            await place_order(quantity=1)

        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("SELECT"):
                statements.append(statement)

        event.listen(engine.sync_engine, "before_cursor_execute", record)
        try:
            page = await ListOrdersUseCase(uow)(user_id=checkout["user_id"], limit=10)
        finally:
            event.remove(engine.sync_engine, "before_cursor_execute", record)

        assert len(page.orders) == 4
        assert all(len(o.items) == 1 for o in page.orders)
        assert all(o.shipping_address is not None for o in page.orders)
        assert sorted(c for o in page.orders for c in o.coupons) == ["SAVE10"]
        # count, page, items, coupons, addresses
        assert len(statements) == 5
