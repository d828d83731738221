"""Администрирование способов доставки, тарифов и налоговых ставок.

Пустая страна в тарифе или ставке означает тариф по умолчанию
(последний уровень подбора в storefront.domain.rates).
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from storefront.domain.models import ShippingMethod, ShippingRate, ShippingRateData, TaxRate, TaxRateData
from storefront.domain.exceptions import (
    ValidationError, ShippingMethodNotFoundError, ShippingRateNotFoundError, TaxRateNotFoundError,
    ResourceInUseError,
)

logger = logging.getLogger(__name__)


class ShippingMethodDTO(BaseModel):
    name: str
    description: Optional[str] = None
    estimated_days: Optional[str] = None
    default_cost: Decimal
    is_active: bool = True


class ShippingMethodWithRates(ShippingMethod):
    rates: List[ShippingRate] = []


def _check_bounds(low, high, what: str) -> None:
    if low is not None and high is not None and low > high:
        raise ValidationError(f"Нижняя граница {what} больше верхней")


def _normalized_rate(rate: ShippingRateData) -> ShippingRateData:
    _check_bounds(rate.min_order_amount, rate.max_order_amount, "суммы заказа")
    _check_bounds(rate.min_weight, rate.max_weight, "веса")
    return rate.model_copy(update={"country": rate.country or ""})


def _normalized_tax_rate(tax_rate: TaxRateData) -> TaxRateData:
    if tax_rate.rate < 0 or tax_rate.rate >= 1:
        raise ValidationError("Ставка налога задаётся долей: от 0 до 1")
    return tax_rate.model_copy(update={"country": tax_rate.country or ""})


async def _get_method(uow, method_id: str) -> ShippingMethod:
    method = await uow.shipping.get_method(method_id)
    if method is None:
        raise ShippingMethodNotFoundError(f"Способ доставки {method_id} не найден")
    return method


async def _get_rate(uow, rate_id: int) -> ShippingRate:
    rate = await uow.shipping.get_rate(rate_id)
    if rate is None:
        raise ShippingRateNotFoundError(f"Тариф {rate_id} не найден")
    return rate


async def _get_tax_rate(uow, tax_rate_id: int) -> TaxRate:
    tax_rate = await uow.shipping.get_tax_rate(tax_rate_id)
    if tax_rate is None:
        raise TaxRateNotFoundError(f"Налоговая ставка {tax_rate_id} не найдена")
    return tax_rate


class ListShippingMethodsWithRatesUseCase:
    """Все способы доставки (включая неактивные) вместе с тарифами"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[ShippingMethodWithRates]:
        async with self._uow() as uow:
            return [
                ShippingMethodWithRates(**method.model_dump(), rates=await uow.shipping.list_rates(method.id))
                for method in await uow.shipping.list_methods()
            ]


class CreateShippingMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, data: ShippingMethodDTO) -> ShippingMethod:
        method = ShippingMethod(id=str(uuid.uuid4()), **data.model_dump())
        async with self._uow() as uow:
            await uow.shipping.add_method(method)
            await uow.commit()

        logger.info(f"Создан способ доставки {method.name}")
        return method


class UpdateShippingMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, method_id: str, data: ShippingMethodDTO) -> ShippingMethod:
        async with self._uow() as uow:
            await _get_method(uow, method_id)
            method = ShippingMethod(id=method_id, **data.model_dump())
            await uow.shipping.update_method(method)
            await uow.commit()

        logger.info(f"Способ доставки {method_id} обновлён")
        return method


class DeleteShippingMethodUseCase:
    """Способ, выбранный в заказах, не удаляется: его можно только выключить"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, method_id: str) -> None:
        async with self._uow() as uow:
            method = await _get_method(uow, method_id)
            if await uow.shipping.is_method_used_by_orders(method_id):
                raise ResourceInUseError(f"Способ доставки {method.name} используется в заказах")
            await uow.shipping.delete_method(method_id)
            await uow.commit()

        logger.info(f"Способ доставки {method.name} удалён вместе с тарифами")


class CreateShippingRateUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, data: ShippingRateData) -> ShippingRate:
        data = _normalized_rate(data)
        async with self._uow() as uow:
            await _get_method(uow, data.shipping_method_id)
            rate_id = await uow.shipping.add_rate(data)
            rate = await _get_rate(uow, rate_id)
            await uow.commit()

        logger.info(f"Создан тариф {rate_id} для способа {data.shipping_method_id}")
        return rate


class UpdateShippingRateUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, rate_id: int, data: ShippingRateData) -> ShippingRate:
        data = _normalized_rate(data)
        async with self._uow() as uow:
            await _get_rate(uow, rate_id)
            await _get_method(uow, data.shipping_method_id)
            await uow.shipping.update_rate(rate_id, data)
            rate = await _get_rate(uow, rate_id)
            await uow.commit()

        logger.info(f"Тариф {rate_id} обновлён")
        return rate


class DeleteShippingRateUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, rate_id: int) -> None:
        async with self._uow() as uow:
            await _get_rate(uow, rate_id)
            await uow.shipping.delete_rate(rate_id)
            await uow.commit()

        logger.info(f"Тариф {rate_id} удалён")


class ListTaxRatesUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[TaxRate]:
        async with self._uow() as uow:
            return await uow.shipping.list_all_tax_rates()


class CreateTaxRateUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, data: TaxRateData) -> TaxRate:
        data = _normalized_tax_rate(data)
        async with self._uow() as uow:
            tax_rate_id = await uow.shipping.add_tax_rate(data)
            tax_rate = await _get_tax_rate(uow, tax_rate_id)
            await uow.commit()

        logger.info(f"Создана налоговая ставка {tax_rate_id}: {tax_rate.country} {tax_rate.state or ''}")
        return tax_rate


class UpdateTaxRateUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, tax_rate_id: int, data: TaxRateData) -> TaxRate:
        data = _normalized_tax_rate(data)
        async with self._uow() as uow:
            await _get_tax_rate(uow, tax_rate_id)
            await uow.shipping.update_tax_rate(tax_rate_id, data)
            tax_rate = await _get_tax_rate(uow, tax_rate_id)
            await uow.commit()

        logger.info(f"Налоговая ставка {tax_rate_id} обновлена")
        return tax_rate


class DeleteTaxRateUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, tax_rate_id: int) -> None:
        async with self._uow() as uow:
            await _get_tax_rate(uow, tax_rate_id)
            await uow.shipping.delete_tax_rate(tax_rate_id)
            await uow.commit()

        logger.info(f"Налоговая ставка {tax_rate_id} удалена")
