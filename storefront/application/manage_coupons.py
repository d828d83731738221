import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from storefront.domain.models import Coupon, DiscountType
from storefront.domain.exceptions import (
    ValidationError, CouponNotFoundError, CouponCodeExistsError, ResourceInUseError,
)

logger = logging.getLogger(__name__)


class CouponDataDTO(BaseModel):
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = None


class CreateCouponDTO(CouponDataDTO):
    code: str


def _as_utc(value: datetime) -> datetime:
    # Время без зоны считаем UTC; в БД всё хранится в UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _checked(data: CouponDataDTO) -> dict:
    valid_from = _as_utc(data.valid_from)
    valid_until = _as_utc(data.valid_until)
    if valid_until < valid_from:
        raise ValidationError("Дата окончания купона раньше даты начала")
    if data.discount_type == DiscountType.PERCENTAGE and data.discount_value > 100:
        raise ValidationError("Процентная скидка не может превышать 100")
    return {
        "description": data.description,
        "discount_type": data.discount_type,
        "discount_value": data.discount_value,
        "valid_from": valid_from,
        "valid_until": valid_until,
        "usage_limit": data.usage_limit,
    }


async def _get_coupon(uow, coupon_id: str) -> Coupon:
    coupon = await uow.coupons.get_by_id(coupon_id)
    if coupon is None:
        raise CouponNotFoundError(f"Купон {coupon_id} не найден")
    return coupon


class ListCouponsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[Coupon]:
        async with self._uow() as uow:
            return await uow.coupons.list_all()


class GetCouponUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, coupon_id: str) -> Coupon:
        async with self._uow() as uow:
            return await _get_coupon(uow, coupon_id)


class CreateCouponUseCase:
    """Создание купона администратором; код купона уникален"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, data: CreateCouponDTO) -> Coupon:
        coupon = Coupon(id=str(uuid.uuid4()), code=data.code, used_count=0, **_checked(data))

        async with self._uow() as uow:
            if await uow.coupons.get_by_code(data.code) is not None:
                raise CouponCodeExistsError(data.code)
            await uow.coupons.add(coupon)
            created = await uow.coupons.get_by_id(coupon.id)
            await uow.commit()

        logger.info(f"Создан купон {coupon.code}")
        return created


class UpdateCouponUseCase:
    """Код и счётчик использований не меняются"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, coupon_id: str, data: CouponDataDTO) -> Coupon:
        values = _checked(data)

        async with self._uow() as uow:
            coupon = await _get_coupon(uow, coupon_id)
            await uow.coupons.update(coupon.model_copy(update=values))
            updated = await uow.coupons.get_by_id(coupon_id)
            await uow.commit()

        logger.info(f"Купон {updated.code} обновлён")
        return updated


class DeleteCouponUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, coupon_id: str) -> None:
        async with self._uow() as uow:
            coupon = await _get_coupon(uow, coupon_id)
            if await uow.coupons.is_used_by_orders(coupon_id):
                raise ResourceInUseError(f"Купон {coupon.code} применён в заказах")
            await uow.coupons.delete(coupon_id)
            await uow.commit()

        logger.info(f"Купон {coupon.code} удалён")
