import logging
from decimal import Decimal
from typing import Callable, List, Optional
from pydantic import BaseModel

from storefront.domain.models import CartLine, Product, ShippingMethod, to_money
from storefront.domain.exceptions import (
    InvalidAddressError, ProductNotFoundError, ShippingMethodNotFoundError, EmptyCartError,
)
from storefront.domain.pricing import (
    ZERO, free_shipping_threshold, qualifies_for_free_shipping, subtotal_of, total_weight,
)
from storefront.domain.rates import RateTarget, resolve
from storefront.domain.regions import distance_surcharge, tax_rate_override
from storefront.application.interfaces import ProductRepository, ShippingRepository
from storefront.application.stock import merge_lines

logger = logging.getLogger(__name__)

Surcharge = Callable[[str, Optional[str], str], Decimal]

STANDARD_METHOD_KEYWORD = "standard"


class ShippingQuote(BaseModel):
    method_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    estimated_days: Optional[str] = None
    base_cost: Decimal
    surcharge: Decimal
    cost: Decimal
    is_free_shipping: bool = False

    def as_free(self) -> "ShippingQuote":
        return self.model_copy(update={"cost": ZERO, "is_free_shipping": True})


class ShippingOptions(BaseModel):
    options: List[ShippingQuote]
    tax_rate: Decimal


class ShippingEstimate(BaseModel):
    quote: ShippingQuote
    tax_rate: Decimal


class ShippingCalculator:
    """Стоимость доставки и ставка налога для адреса"""

    def __init__(
        self,
        shipping: ShippingRepository,
        default_cost: Decimal,
        surcharge: Optional[Surcharge] = distance_surcharge,
    ):
        self._shipping = shipping
        self._default_cost = default_cost
        self._surcharge = surcharge

    async def get_active_method(self, method_id: str) -> ShippingMethod:
        method = await self._shipping.get_method(method_id)
        if method is None or not method.is_active:
            raise ShippingMethodNotFoundError(f"Способ доставки {method_id} не найден")
        return method

    async def quote(self, method: ShippingMethod, target: RateTarget) -> ShippingQuote:
        rate = resolve(await self._shipping.list_rates(method.id), target)
        base_cost = rate.cost if rate is not None else method.default_cost
        surcharge = ZERO
        if self._surcharge is not None:
            surcharge = self._surcharge(target.country, target.state, method.name)
        return ShippingQuote(
            method_id=method.id,
            name=method.name,
            description=method.description,
            estimated_days=method.estimated_days,
            base_cost=to_money(base_cost),
            surcharge=to_money(surcharge),
            cost=to_money(base_cost + surcharge)
        )

    def flat_quote(self) -> ShippingQuote:
        """Способ доставки не выбран: фиксированная стоимость без надбавок"""
        cost = to_money(self._default_cost)
        return ShippingQuote(name="Flat rate", base_cost=cost, surcharge=ZERO, cost=cost)

    async def tax_rate(self, target: RateTarget) -> Decimal:
        override = tax_rate_override(target.country)
        if override is not None:
            return override
        rate = resolve(await self._shipping.list_tax_rates(), target)
        return rate.rate if rate is not None else Decimal("0")


async def _load_products(products_repo: ProductRepository, lines: List[CartLine]) -> dict[str, Product]:
    products = await products_repo.get_many(line.product_id for line in lines)
    for line in lines:
        if line.product_id not in products:
            raise ProductNotFoundError(line.product_id)
    return products


class ListShippingMethodsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[ShippingMethod]:
        async with self._uow() as uow:
            return await uow.shipping.list_active_methods()


class CalculateShippingUseCase:
    """Варианты доставки по всем активным способам для адреса пользователя"""

    def __init__(self, unit_of_work, default_cost: Decimal, surcharge: Optional[Surcharge] = distance_surcharge):
        self._uow = unit_of_work
        self._default_cost = default_cost
        self._surcharge = surcharge

    async def __call__(self, user_id: str, address_id: str, lines: List[CartLine]) -> ShippingOptions:
        lines = merge_lines(lines)
        if not lines:
            raise EmptyCartError()

        async with self._uow() as uow:
            address = await uow.addresses.get_for_user(address_id, user_id)
            if address is None:
                raise InvalidAddressError("shipping")

            products = await _load_products(uow.products, lines)
            subtotal = subtotal_of(lines, products)
            threshold = free_shipping_threshold(products.values())
            target = RateTarget(
                country=address.country,
                state=address.state,
                postal_code=address.postal_code,
                order_amount=subtotal,
                weight=total_weight(lines, products)
            )

            calculator = ShippingCalculator(uow.shipping, self._default_cost, self._surcharge)
            options = []
            for method in await uow.shipping.list_active_methods():
                quote = await calculator.quote(method, target)
                if qualifies_for_free_shipping(threshold, subtotal):
                    quote = quote.as_free()
                options.append(quote)

            return ShippingOptions(options=options, tax_rate=await calculator.tax_rate(target))


class EstimateShippingUseCase:
    """Оценка стандартной доставки для корзины без сохранённого адреса"""

    def __init__(self, unit_of_work, default_cost: Decimal, surcharge: Optional[Surcharge] = distance_surcharge):
        self._uow = unit_of_work
        self._default_cost = default_cost
        self._surcharge = surcharge

    async def __call__(
        self,
        lines: List[CartLine],
        country: Optional[str] = None,
        state: Optional[str] = None,
        postal_code: Optional[str] = None,
    ) -> ShippingEstimate:
        lines = merge_lines(lines)
        if not lines:
            raise EmptyCartError()

        async with self._uow() as uow:
            methods = await uow.shipping.list_active_methods()
            standard = next((m for m in methods if STANDARD_METHOD_KEYWORD in m.name.lower()), None)
            if standard is None:
                raise ShippingMethodNotFoundError("Стандартный способ доставки не найден")

            products = await _load_products(uow.products, lines)
            subtotal = subtotal_of(lines, products)
            target = RateTarget(
                country=country or "US",
                state=state or None,
                postal_code=postal_code or None,
                order_amount=subtotal,
                weight=total_weight(lines, products)
            )

            calculator = ShippingCalculator(uow.shipping, self._default_cost, self._surcharge)
            quote = await calculator.quote(standard, target)
            if qualifies_for_free_shipping(free_shipping_threshold(products.values()), subtotal):
                quote = quote.as_free()
            logger.info(f"Оценка доставки для {target.country}: {quote.cost}")
            return ShippingEstimate(quote=quote, tax_rate=await calculator.tax_rate(target))
