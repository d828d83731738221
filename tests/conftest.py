"""Pytest fixtures for storefront tests."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from storefront.database import create_tables
from storefront.domain.models import DiscountType
from storefront.infrastructure.db_schema import (
    addresses_tbl, cart_items_tbl, coupons_tbl, orders_tbl, products_tbl,
    shipping_methods_tbl, shipping_rates_tbl, tax_rates_tbl,
)
from storefront.infrastructure.unit_of_work import UnitOfWork


class Store:
    """Direct table access for arranging and asserting database state."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def _insert(self, table, **values):
        async with self._session_factory() as session:
            result = await session.execute(insert(table).values(**values))
            await session.commit()
            return result.inserted_primary_key[0]

    async def _scalar(self, stmt):
        async with self._session_factory() as session:
            return await session.scalar(stmt)

    async def add_product(self, price="10.00", stock=10, weight=None, free_shipping_threshold=None):
        product_id = str(uuid.uuid4())
        await self._insert(
            products_tbl,
            id=product_id,
            name=f"product-{product_id[:8]}",
            price=Decimal(price),
            stock=stock,
            weight=weight,
            free_shipping_threshold=Decimal(free_shipping_threshold) if free_shipping_threshold else None,
        )
        return product_id

    async def add_address(self, user_id, country="US", state="TX", postal_code="75001"):
        address_id = str(uuid.uuid4())
        await self._insert(
            addresses_tbl,
            id=address_id,
            user_id=user_id,
            country=country,
            state=state,
            postal_code=postal_code,
        )
        return address_id

    async def add_method(self, name="Standard Shipping", default_cost="10.00", is_active=True):
        method_id = str(uuid.uuid4())
        await self._insert(
            shipping_methods_tbl,
            id=method_id,
            name=name,
            default_cost=Decimal(default_cost),
            is_active=is_active,
        )
        return method_id

    async def add_rate(self, method_id, cost, country="", state=None, postal_code_prefix=None, **bounds):
        return await self._insert(
            shipping_rates_tbl,
            shipping_method_id=method_id,
            cost=Decimal(cost),
            country=country,
            state=state,
            postal_code_prefix=postal_code_prefix,
            **bounds,
        )

    async def add_tax_rate(self, country, rate, state=None, postal_code_prefix=None, is_active=True):
        return await self._insert(
            tax_rates_tbl,
            country=country,
            state=state,
            postal_code_prefix=postal_code_prefix,
            rate=Decimal(rate),
            is_active=is_active,
        )

    async def add_coupon(
        self,
        code,
        discount_type=DiscountType.PERCENTAGE,
        discount_value="10",
        usage_limit=None,
        used_count=0,
        valid_from=None,
        valid_until=None,
    ):
        now = datetime.now(timezone.utc)
        coupon_id = str(uuid.uuid4())
        await self._insert(
            coupons_tbl,
            id=coupon_id,
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            valid_from=valid_from or now - timedelta(days=1),
            valid_until=valid_until or now + timedelta(days=1),
            usage_limit=usage_limit,
            used_count=used_count,
        )
        return coupon_id

    async def add_cart_line(self, user_id, product_id, quantity):
        await self._insert(cart_items_tbl, user_id=user_id, product_id=product_id, quantity=quantity)

    async def stock(self, product_id):
        return await self._scalar(select(products_tbl.c.stock).where(products_tbl.c.id == product_id))

    async def used_count(self, coupon_id):
        return await self._scalar(select(coupons_tbl.c.used_count).where(coupons_tbl.c.id == coupon_id))

    async def order_count(self):
        return await self._scalar(select(func.count()).select_from(orders_tbl))

    async def cart_size(self, user_id):
        return await self._scalar(
            select(func.count()).select_from(cart_items_tbl).where(cart_items_tbl.c.user_id == user_id)
        )


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


@pytest.fixture
async def checkout(store):
    """Product A at 10.00, a TX address, Standard shipping at 5.00 and 10% tax."""
    product_id = await store.add_product(price="10.00", stock=5, weight=1.0)
    address_id = await store.add_address("user-1", country="US", state="TX", postal_code="75001")
    method_id = await store.add_method("Standard Shipping", default_cost="10.00")
    await store.add_rate(method_id, "5.00", country="US", state="TX")
    await store.add_tax_rate("US", "0.10", state="TX")
    return {
        "user_id": "user-1",
        "product_id": product_id,
        "address_id": address_id,
        "method_id": method_id,
    }
