from typing import Optional, List, Iterable
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from storefront.domain.models import (
    Address, CartLine, Coupon, DiscountType, Order, OrderItem, OrderStatus, PaymentStatus,
    Product, ShippingMethod, ShippingRate, ShippingRateData, TaxRate, TaxRateData, CANCELLABLE_STATUSES,
)
from storefront.domain.exceptions import CouponCodeExistsError
from storefront.infrastructure.db_schema import (
    addresses_tbl, cart_items_tbl, coupons_tbl, order_coupons_tbl, order_items_tbl, orders_tbl,
    products_tbl, shipping_methods_tbl, shipping_rates_tbl, tax_rates_tbl,
)
from storefront.application.interfaces import (
    AddressRepository, CartRepository, CouponRepository, OrderRepository, ProductRepository,
    ShippingRepository,
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite теряет tzinfo, всё хранится в UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _address_to_domain(row) -> Address:
    return Address(
        id=row.id,
        user_id=row.user_id,
        country=row.country,
        state=row.state,
        postal_code=row.postal_code,
        city=row.city,
        street=row.street,
    )


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        ids = list(product_ids)
        if not ids:
            return {}
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id.in_(ids))
        )
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        stmt = (
            update(products_tbl)
            .where(
                products_tbl.c.id == product_id,
                products_tbl.c.stock >= quantity
            )
            .values(stock=products_tbl.c.stock - quantity)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def increment_stock(self, product_id: str, quantity: int) -> None:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(stock=products_tbl.c.stock + quantity)
        )
        await self._session.execute(stmt)

    def _to_domain(self, row) -> Product:
        return Product(
            id=row.id,
            name=row.name,
            price=row.price,
            stock=row.stock,
            weight=row.weight,
            free_shipping_threshold=row.free_shipping_threshold
        )


class SQLAlchemyAddressRepository(AddressRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_for_user(self, address_id: str, user_id: str) -> Optional[Address]:
        result = await self._session.execute(
            select(addresses_tbl).where(
                addresses_tbl.c.id == address_id,
                addresses_tbl.c.user_id == user_id
            )
        )
        row = result.fetchone()
        return _address_to_domain(row) if row else None


class SQLAlchemyCouponRepository(CouponRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self._session.execute(
            select(coupons_tbl).where(coupons_tbl.c.code == code)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def increment_usage(self, coupon_id: str, now: datetime) -> bool:
        stmt = (
            update(coupons_tbl)
            .where(
                coupons_tbl.c.id == coupon_id,
                coupons_tbl.c.valid_from <= now,
                coupons_tbl.c.valid_until >= now,
                or_(
                    coupons_tbl.c.usage_limit.is_(None),
                    coupons_tbl.c.used_count < coupons_tbl.c.usage_limit
                )
            )
            .values(used_count=coupons_tbl.c.used_count + 1)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        result = await self._session.execute(
            select(coupons_tbl).where(coupons_tbl.c.id == coupon_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_all(self) -> List[Coupon]:
        result = await self._session.execute(
            select(coupons_tbl).order_by(coupons_tbl.c.valid_until.desc(), coupons_tbl.c.code.asc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def add(self, coupon: Coupon) -> None:
        try:
            await self._session.execute(
                insert(coupons_tbl).values(
                    id=coupon.id,
                    code=coupon.code,
                    description=coupon.description,
                    discount_type=coupon.discount_type,
                    discount_value=coupon.discount_value,
                    valid_from=coupon.valid_from,
                    valid_until=coupon.valid_until,
                    usage_limit=coupon.usage_limit,
                    used_count=coupon.used_count
                )
            )
        except IntegrityError:
            # Уникальность кода проверяет БД, если параллельно создали такой же купон
            raise CouponCodeExistsError(coupon.code)

    async def update(self, coupon: Coupon) -> None:
        await self._session.execute(
            update(coupons_tbl)
            .where(coupons_tbl.c.id == coupon.id)
            .values(
                description=coupon.description,
                discount_type=coupon.discount_type,
                discount_value=coupon.discount_value,
                valid_from=coupon.valid_from,
                valid_until=coupon.valid_until,
                usage_limit=coupon.usage_limit
            )
        )

    async def delete(self, coupon_id: str) -> None:
        await self._session.execute(delete(coupons_tbl).where(coupons_tbl.c.id == coupon_id))

    async def is_used_by_orders(self, coupon_id: str) -> bool:
        count = await self._session.scalar(
            select(func.count())
            .select_from(order_coupons_tbl)
            .where(order_coupons_tbl.c.coupon_id == coupon_id)
        )
        return bool(count)

    def _to_domain(self, row) -> Coupon:
        return Coupon(
            id=row.id,
            code=row.code,
            description=row.description,
            discount_type=DiscountType(row.discount_type),
            discount_value=row.discount_value,
            valid_from=_aware(row.valid_from),
            valid_until=_aware(row.valid_until),
            usage_limit=row.usage_limit,
            used_count=row.used_count
        )


class SQLAlchemyShippingRepository(ShippingRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_method(self, method_id: str) -> Optional[ShippingMethod]:
        result = await self._session.execute(
            select(shipping_methods_tbl).where(shipping_methods_tbl.c.id == method_id)
        )
        row = result.fetchone()
        return self._method_to_domain(row) if row else None

    async def list_active_methods(self) -> List[ShippingMethod]:
        result = await self._session.execute(
            select(shipping_methods_tbl)
            .where(shipping_methods_tbl.c.is_active.is_(True))
            .order_by(shipping_methods_tbl.c.default_cost.asc(), shipping_methods_tbl.c.name.asc())
        )
        return [self._method_to_domain(row) for row in result.fetchall()]

    async def list_methods(self) -> List[ShippingMethod]:
        result = await self._session.execute(
            select(shipping_methods_tbl)
            .order_by(shipping_methods_tbl.c.default_cost.asc(), shipping_methods_tbl.c.name.asc())
        )
        return [self._method_to_domain(row) for row in result.fetchall()]

    async def add_method(self, method: ShippingMethod) -> None:
        await self._session.execute(
            insert(shipping_methods_tbl).values(**method.model_dump())
        )

    async def update_method(self, method: ShippingMethod) -> None:
        await self._session.execute(
            update(shipping_methods_tbl)
            .where(shipping_methods_tbl.c.id == method.id)
            .values(**method.model_dump(exclude={"id"}))
        )

    async def delete_method(self, method_id: str) -> None:
        # Тарифы удаляем явно: SQLite без PRAGMA foreign_keys не выполняет ON DELETE CASCADE
        await self._session.execute(
            delete(shipping_rates_tbl).where(shipping_rates_tbl.c.shipping_method_id == method_id)
        )
        await self._session.execute(
            delete(shipping_methods_tbl).where(shipping_methods_tbl.c.id == method_id)
        )

    async def is_method_used_by_orders(self, method_id: str) -> bool:
        count = await self._session.scalar(
            select(func.count())
            .select_from(orders_tbl)
            .where(orders_tbl.c.shipping_method_id == method_id)
        )
        return bool(count)

    async def list_rates(self, method_id: str) -> List[ShippingRate]:
        # Порядок по id задаёт порядок выбора внутри уровня
        result = await self._session.execute(
            select(shipping_rates_tbl)
            .where(shipping_rates_tbl.c.shipping_method_id == method_id)
            .order_by(shipping_rates_tbl.c.id.asc())
        )
        return [self._rate_to_domain(row) for row in result.fetchall()]

    async def get_rate(self, rate_id: int) -> Optional[ShippingRate]:
        result = await self._session.execute(
            select(shipping_rates_tbl).where(shipping_rates_tbl.c.id == rate_id)
        )
        row = result.fetchone()
        return self._rate_to_domain(row) if row else None

    async def add_rate(self, rate: ShippingRateData) -> int:
        result = await self._session.execute(
            insert(shipping_rates_tbl).values(**rate.model_dump())
        )
        return result.inserted_primary_key[0]

    async def update_rate(self, rate_id: int, rate: ShippingRateData) -> None:
        await self._session.execute(
            update(shipping_rates_tbl)
            .where(shipping_rates_tbl.c.id == rate_id)
            .values(**rate.model_dump())
        )

    async def delete_rate(self, rate_id: int) -> None:
        await self._session.execute(delete(shipping_rates_tbl).where(shipping_rates_tbl.c.id == rate_id))

    async def list_tax_rates(self) -> List[TaxRate]:
        result = await self._session.execute(
            select(tax_rates_tbl)
            .where(tax_rates_tbl.c.is_active.is_(True))
            .order_by(tax_rates_tbl.c.id.asc())
        )
        return [self._tax_rate_to_domain(row) for row in result.fetchall()]

    async def list_all_tax_rates(self) -> List[TaxRate]:
        result = await self._session.execute(
            select(tax_rates_tbl).order_by(tax_rates_tbl.c.id.asc())
        )
        return [self._tax_rate_to_domain(row) for row in result.fetchall()]

    async def get_tax_rate(self, tax_rate_id: int) -> Optional[TaxRate]:
        result = await self._session.execute(
            select(tax_rates_tbl).where(tax_rates_tbl.c.id == tax_rate_id)
        )
        row = result.fetchone()
        return self._tax_rate_to_domain(row) if row else None

    async def add_tax_rate(self, tax_rate: TaxRateData) -> int:
        result = await self._session.execute(
            insert(tax_rates_tbl).values(**tax_rate.model_dump())
        )
        return result.inserted_primary_key[0]

    async def update_tax_rate(self, tax_rate_id: int, tax_rate: TaxRateData) -> None:
        await self._session.execute(
            update(tax_rates_tbl)
            .where(tax_rates_tbl.c.id == tax_rate_id)
            .values(**tax_rate.model_dump())
        )

    async def delete_tax_rate(self, tax_rate_id: int) -> None:
        await self._session.execute(delete(tax_rates_tbl).where(tax_rates_tbl.c.id == tax_rate_id))

    def _method_to_domain(self, row) -> ShippingMethod:
        return ShippingMethod(
            id=row.id,
            name=row.name,
            description=row.description,
            estimated_days=row.estimated_days,
            default_cost=row.default_cost,
            is_active=row.is_active
        )

    def _rate_to_domain(self, row) -> ShippingRate:
        return ShippingRate(
            id=row.id,
            shipping_method_id=row.shipping_method_id,
            country=row.country,
            state=row.state,
            postal_code_prefix=row.postal_code_prefix,
            min_order_amount=row.min_order_amount,
            max_order_amount=row.max_order_amount,
            min_weight=row.min_weight,
            max_weight=row.max_weight,
            cost=row.cost
        )

    def _tax_rate_to_domain(self, row) -> TaxRate:
        return TaxRate(
            id=row.id,
            country=row.country,
            state=row.state,
            postal_code_prefix=row.postal_code_prefix,
            rate=row.rate,
            description=row.description,
            is_active=row.is_active
        )


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_lines(self, user_id: str) -> List[CartLine]:
        result = await self._session.execute(
            select(cart_items_tbl)
            .where(cart_items_tbl.c.user_id == user_id)
            .order_by(cart_items_tbl.c.id.asc())
        )
        return [
            CartLine(product_id=row.product_id, quantity=row.quantity)
            for row in result.fetchall()
        ]

    async def clear(self, user_id: str) -> None:
        await self._session.execute(
            delete(cart_items_tbl).where(cart_items_tbl.c.user_id == user_id)
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        if not row:
            return None
        orders = await self._load_aggregates([row])
        return orders[0]

    async def list_orders(
        self,
        user_id: Optional[str] = None,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[List[Order], int]:
        conditions = []
        if user_id is not None:
            conditions.append(orders_tbl.c.user_id == user_id)
        if order_status is not None:
            conditions.append(orders_tbl.c.order_status == order_status)
        if payment_status is not None:
            conditions.append(orders_tbl.c.payment_status == payment_status)

        total = await self._session.scalar(
            select(func.count()).select_from(orders_tbl).where(*conditions)
        )
        result = await self._session.execute(
            select(orders_tbl)
            .where(*conditions)
            .order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.id.asc())
            .limit(limit)
            .offset(offset)
        )
        orders = await self._load_aggregates(result.fetchall())
        return orders, total or 0

    async def create(self, order: Order, items: List[OrderItem], coupon_ids: List[str]) -> None:
        await self._session.execute(
            insert(orders_tbl).values(
                id=order.id,
                user_id=order.user_id,
                order_status=order.order_status,
                payment_status=order.payment_status,
                shipping_address_id=order.shipping_address_id,
                billing_address_id=order.billing_address_id,
                shipping_method_id=order.shipping_method_id,
                payment_method=order.payment_method,
                subtotal=order.subtotal,
                discount_amount=order.discount_amount,
                shipping_cost=order.shipping_cost,
                tax_amount=order.tax_amount,
                total_amount=order.total_amount,
                created_at=order.created_at,
                updated_at=order.updated_at
            )
        )
        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "order_id": order.id,
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total_price": item.total_price,
                }
                for item in items
            ]
        )
        if coupon_ids:
            await self._session.execute(
                insert(order_coupons_tbl),
                [{"order_id": order.id, "coupon_id": coupon_id} for coupon_id in coupon_ids]
            )

    async def update_status(
        self,
        order_id: str,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> None:
        values = {"updated_at": datetime.now(timezone.utc)}
        if order_status is not None:
            values["order_status"] = order_status
        if payment_status is not None:
            values["payment_status"] = payment_status
        await self._session.execute(
            update(orders_tbl).where(orders_tbl.c.id == order_id).values(**values)
        )

    async def mark_cancelled(self, order_id: str, payment_status: PaymentStatus) -> bool:
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order_id,
                orders_tbl.c.order_status.in_(CANCELLABLE_STATUSES)
            )
            .values(
                order_status=OrderStatus.CANCELLED,
                payment_status=payment_status,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def _load_aggregates(self, rows) -> List[Order]:
        """Трансформация DB → Domain: позиции, купоны и адреса всех заказов тремя запросами"""
        if not rows:
            return []
        order_ids = [row.id for row in rows]

        items_result = await self._session.execute(
            select(order_items_tbl)
            .where(order_items_tbl.c.order_id.in_(order_ids))
            .order_by(order_items_tbl.c.id.asc())
        )
        items: dict[str, List[OrderItem]] = {order_id: [] for order_id in order_ids}
        for item in items_result.fetchall():
            items[item.order_id].append(
                OrderItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price
                )
            )

        coupons_result = await self._session.execute(
            select(order_coupons_tbl.c.order_id, coupons_tbl.c.code)
            .join(coupons_tbl, order_coupons_tbl.c.coupon_id == coupons_tbl.c.id)
            .where(order_coupons_tbl.c.order_id.in_(order_ids))
            .order_by(coupons_tbl.c.code.asc())
        )
        coupons: dict[str, List[str]] = {order_id: [] for order_id in order_ids}
        for order_id, code in coupons_result.fetchall():
            coupons[order_id].append(code)

        address_ids = {row.shipping_address_id for row in rows} | {row.billing_address_id for row in rows}
        addresses_result = await self._session.execute(
            select(addresses_tbl).where(addresses_tbl.c.id.in_(list(address_ids)))
        )
        addresses = {a.id: _address_to_domain(a) for a in addresses_result.fetchall()}

        return [
            Order(
                id=row.id,
                user_id=row.user_id,
                order_status=OrderStatus(row.order_status),
                payment_status=PaymentStatus(row.payment_status),
                shipping_address_id=row.shipping_address_id,
                billing_address_id=row.billing_address_id,
                shipping_method_id=row.shipping_method_id,
                payment_method=row.payment_method,
                subtotal=row.subtotal,
                discount_amount=row.discount_amount,
                shipping_cost=row.shipping_cost,
                tax_amount=row.tax_amount,
                total_amount=row.total_amount,
                created_at=_aware(row.created_at),
                updated_at=_aware(row.updated_at),
                items=items[row.id],
                coupons=coupons[row.id],
                shipping_address=addresses.get(row.shipping_address_id),
                billing_address=addresses.get(row.billing_address_id)
            )
            for row in rows
        ]
