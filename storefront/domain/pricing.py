from decimal import Decimal
from typing import Iterable, Optional
from pydantic import BaseModel

from storefront.domain.models import CartLine, Product, to_money

ZERO = Decimal("0.00")


class PriceBreakdown(BaseModel):
    subtotal: Decimal
    discount: Decimal
    discounted_subtotal: Decimal
    shipping_cost: Decimal
    is_free_shipping: bool = False
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def subtotal_of(lines: Iterable[CartLine], products: dict[str, Product]) -> Decimal:
    """Сумма по ценам на момент заказа"""
    return to_money(sum(
        (products[line.product_id].price * line.quantity for line in lines),
        ZERO,
    ))


def total_weight(lines: Iterable[CartLine], products: dict[str, Product]) -> float:
    return sum(products[line.product_id].shipping_weight(line.quantity) for line in lines)


def free_shipping_threshold(products: Iterable[Product]) -> Optional[Decimal]:
    """Минимальный порог бесплатной доставки среди товаров заказа"""
    thresholds = [p.free_shipping_threshold for p in products if p.free_shipping_threshold is not None]
    return min(thresholds) if thresholds else None


def qualifies_for_free_shipping(threshold: Optional[Decimal], discounted_subtotal: Decimal) -> bool:
    return threshold is not None and threshold <= discounted_subtotal


def calculate_totals(
    subtotal: Decimal,
    discount: Decimal,
    shipping_cost: Decimal,
    tax_rate: Decimal,
    free_shipping_threshold: Optional[Decimal] = None,
) -> PriceBreakdown:
    """Итог заказа.

    Порядок операций важен: скидка -> налог со суммы после скидки ->
    доставка добавляется последней и налогом не облагается.
    """
    subtotal = to_money(subtotal)
    discount = to_money(min(discount, subtotal))
    discounted = max(ZERO, subtotal - discount)

    is_free = qualifies_for_free_shipping(free_shipping_threshold, discounted)
    shipping = ZERO if is_free else to_money(shipping_cost)

    tax_amount = to_money(discounted * tax_rate)
    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        discounted_subtotal=discounted,
        shipping_cost=shipping,
        is_free_shipping=is_free,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total_amount=discounted + shipping + tax_amount,
    )
