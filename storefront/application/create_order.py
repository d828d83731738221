import logging
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime, timezone
import uuid

from storefront.domain.models import Order, OrderItem, OrderStatus, PaymentStatus, CartLine, to_money
from storefront.domain.exceptions import EmptyCartError, InvalidAddressError
from storefront.domain.pricing import calculate_totals, free_shipping_threshold, subtotal_of, total_weight
from storefront.domain.rates import RateTarget
from storefront.domain.regions import distance_surcharge
from storefront.application.coupons import CouponResolver
from storefront.application.shipping import ShippingCalculator, Surcharge
from storefront.application.stock import StockLedger, merge_lines


logger = logging.getLogger(__name__)


class CreateOrderDTO(BaseModel):
    user_id: str
    shipping_address_id: str
    billing_address_id: str
    payment_method: str
    lines: Optional[List[CartLine]] = None
    coupon_code: Optional[str] = None
    shipping_method_id: Optional[str] = None


class CreateOrderUseCase:
    """Оформление заказа одной транзакцией.

    Все проверки (адреса, остатки, купон, способ доставки) выполняются до
    первого изменения данных. Затем в том же UoW: условное списание остатков,
    учёт использования купона, вставка заказа с позициями и очистка корзины.
    Любая ошибка до commit откатывает всё целиком.
    """

    def __init__(
        self,
        unit_of_work,
        default_shipping_cost: Decimal,
        surcharge: Optional[Surcharge] = distance_surcharge,
    ):
        self._uow = unit_of_work
        self._default_shipping_cost = default_shipping_cost
        self._surcharge = surcharge

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Создание заказа для пользователя {order_data.user_id}")
        now = datetime.now(timezone.utc)

        async with self._uow() as uow:
            # 1. Строки заказа: из запроса или из корзины
            lines = order_data.lines
            if lines is None:
                lines = await uow.carts.get_lines(order_data.user_id)
            lines = merge_lines(lines)
            if not lines:
                raise EmptyCartError()

            # 2. Адреса принадлежат пользователю
            shipping_address = await uow.addresses.get_for_user(order_data.shipping_address_id, order_data.user_id)
            if shipping_address is None:
                raise InvalidAddressError("shipping")
            billing_address = await uow.addresses.get_for_user(order_data.billing_address_id, order_data.user_id)
            if billing_address is None:
                raise InvalidAddressError("billing")

            # 3. Остатки по всем строкам
            ledger = StockLedger(uow.products)
            products = await ledger.check(lines)

            # 4. Купон
            coupons = CouponResolver(uow.coupons)
            coupon = await coupons.try_validate(order_data.coupon_code, now)

            # 5. Доставка и налог по адресу доставки
            subtotal = subtotal_of(lines, products)
            target = RateTarget(
                country=shipping_address.country,
                state=shipping_address.state,
                postal_code=shipping_address.postal_code,
                order_amount=subtotal,
                weight=total_weight(lines, products)
            )
            calculator = ShippingCalculator(uow.shipping, self._default_shipping_cost, self._surcharge)
            if order_data.shipping_method_id:
                method = await calculator.get_active_method(order_data.shipping_method_id)
                shipping_quote = await calculator.quote(method, target)
            else:
                shipping_quote = calculator.flat_quote()
            tax_rate = await calculator.tax_rate(target)

            # 6. Итоги
            totals = calculate_totals(
                subtotal=subtotal,
                discount=coupon.discount_for(subtotal) if coupon else Decimal("0"),
                shipping_cost=shipping_quote.cost,
                tax_rate=tax_rate,
                free_shipping_threshold=free_shipping_threshold(products.values())
            )

            # 7. Изменения
            await ledger.reserve(lines)
            if coupon:
                await coupons.commit_usage(coupon, now)

            order = Order(
                id=str(uuid.uuid4()),
                user_id=order_data.user_id,
                order_status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                shipping_address_id=shipping_address.id,
                billing_address_id=billing_address.id,
                shipping_method_id=order_data.shipping_method_id,
                payment_method=order_data.payment_method,
                subtotal=totals.subtotal,
                discount_amount=totals.discount,
                shipping_cost=totals.shipping_cost,
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                created_at=now,
                updated_at=now
            )
            items = [
                OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=products[line.product_id].price,
                    total_price=to_money(products[line.product_id].price * line.quantity)
                )
                for line in lines
            ]
            await uow.orders.create(order, items, [coupon.id] if coupon else [])
            await uow.carts.clear(order_data.user_id)

            created = await uow.orders.get_by_id(order.id)
            await uow.commit()

        logger.info(f"Заказ создан: {order.id}, итого {totals.total_amount}")
        return created
