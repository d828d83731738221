import logging
from datetime import datetime, timezone
from typing import Optional

from storefront.domain.models import Coupon
from storefront.domain.exceptions import (
    CouponInvalidError, CouponInvalidReason, CouponLimitReachedError, NotFoundError,
)
from storefront.application.interfaces import CouponRepository

logger = logging.getLogger(__name__)


class CouponResolver:
    def __init__(self, coupons: CouponRepository):
        self._coupons = coupons

    async def validate(self, code: str, now: datetime) -> Coupon:
        coupon = await self._coupons.get_by_code(code)
        if coupon is None:
            raise CouponInvalidError(code, CouponInvalidReason.NOT_FOUND)
        if not coupon.is_within_window(now):
            raise CouponInvalidError(code, CouponInvalidReason.OUT_OF_WINDOW)
        if not coupon.has_uses_left():
            raise CouponInvalidError(code, CouponInvalidReason.LIMIT_REACHED)
        return coupon

    async def try_validate(self, code: Optional[str], now: datetime) -> Optional[Coupon]:
        """Недействительный купон при оформлении заказа не ошибка: заказ идёт без скидки"""
        if not code:
            return None
        try:
            return await self.validate(code, now)
        except CouponInvalidError as e:
            logger.warning(f"Купон проигнорирован: {e}")
            return None

    async def commit_usage(self, coupon: Coupon, now: datetime) -> None:
        # Повторная проверка лимита и срока в том же UPDATE
        if not await self._coupons.increment_usage(coupon.id, now):
            raise CouponLimitReachedError(coupon.code)


class ValidateCouponUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, code: str) -> Coupon:
        async with self._uow() as uow:
            try:
                return await CouponResolver(uow.coupons).validate(code, datetime.now(timezone.utc))
            except CouponInvalidError as e:
                if e.reason == CouponInvalidReason.NOT_FOUND:
                    raise NotFoundError(f"Купон {code} не найден")
                raise
