from datetime import datetime, timedelta, timezone

import pytest

from storefront.application.coupons import CouponResolver, ValidateCouponUseCase
from storefront.application.stock import StockLedger, merge_lines
from storefront.domain.exceptions import (
    CouponInvalidError, CouponInvalidReason, CouponLimitReachedError, InsufficientStockError,
    NotFoundError,
)
from storefront.domain.models import CartLine, OrderItem


def line(product_id, quantity):
    return CartLine(product_id=product_id, quantity=quantity)


class TestStockLedger:
    async def test_reserve_and_release(self, uow, store):
        product_id = await store.add_product(stock=4)

        async with uow() as u:
            await StockLedger(u.products).reserve([line(product_id, 3)])
            await u.commit()
        assert await store.stock(product_id) == 1

        async with uow() as u:
            await StockLedger(u.products).release([
                OrderItem(product_id=product_id, quantity=3, unit_price="10.00", total_price="30.00")
            ])
            await u.commit()
        assert await store.stock(product_id) == 4

    async def test_reserve_is_conditional(self, uow, store):
        product_id = await store.add_product(stock=2)

        async with uow() as u:
            with pytest.raises(InsufficientStockError) as exc:
                await StockLedger(u.products).reserve([line(product_id, 3)])
        assert exc.value.available == 2
        assert await store.stock(product_id) == 2

    async def test_stock_taken_between_check_and_reserve(self, uow, store):
        product_id = await store.add_product(stock=1)

        async with uow() as first:
            ledger = StockLedger(first.products)
            await ledger.check([line(product_id, 1)])

            async with uow() as second:
                await StockLedger(second.products).reserve([line(product_id, 1)])
                await second.commit()

            with pytest.raises(InsufficientStockError):
                await ledger.reserve([line(product_id, 1)])

        assert await store.stock(product_id) == 0

    async def test_partial_reservation_is_rolled_back(self, uow, store):
        plenty = await store.add_product(stock=10)
        scarce = await store.add_product(stock=1)

        with pytest.raises(InsufficientStockError):
            async with uow() as u:
                await StockLedger(u.products).reserve([line(plenty, 5), line(scarce, 2)])
                await u.commit()

        assert await store.stock(plenty) == 10

    def test_merge_lines(self):
        merged = merge_lines([line("a", 1), line("b", 2), line("a", 4)])
        assert [(m.product_id, m.quantity) for m in merged] == [("a", 5), ("b", 2)]


class TestCouponResolver:
    async def test_validate_reasons(self, uow, store):
        now = datetime.now(timezone.utc)
        await store.add_coupon("OLD", valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=5))
        await store.add_coupon("DONE", usage_limit=2, used_count=2)

        async with uow() as u:
            resolver = CouponResolver(u.coupons)
            for code, reason in [
                ("MISSING", CouponInvalidReason.NOT_FOUND),
                ("OLD", CouponInvalidReason.OUT_OF_WINDOW),
                ("DONE", CouponInvalidReason.LIMIT_REACHED),
            ]:
                with pytest.raises(CouponInvalidError) as exc:
                    await resolver.validate(code, now)
                assert exc.value.reason == reason

    async def test_commit_usage_increments_once(self, uow, store):
        coupon_id = await store.add_coupon("ONCE", usage_limit=1)
        now = datetime.now(timezone.utc)

        async with uow() as u:
            resolver = CouponResolver(u.coupons)
            coupon = await resolver.validate("ONCE", now)
            await resolver.commit_usage(coupon, now)
            await u.commit()

        assert await store.used_count(coupon_id) == 1

    async def test_limit_reached_between_validate_and_commit(self, uow, store):
        coupon_id = await store.add_coupon("LAST", usage_limit=1)
        now = datetime.now(timezone.utc)

        async with uow() as first:
            resolver = CouponResolver(first.coupons)
            coupon = await resolver.validate("LAST", now)

            async with uow() as second:
                await CouponResolver(second.coupons).commit_usage(coupon, now)
                await second.commit()

            with pytest.raises(CouponLimitReachedError):
                await resolver.commit_usage(coupon, now)

        assert await store.used_count(coupon_id) == 1

    async def test_validation_endpoint_treats_unknown_code_as_not_found(self, uow):
        with pytest.raises(NotFoundError):
            await ValidateCouponUseCase(uow)("MISSING")
