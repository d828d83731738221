import logging
import uuid
from decimal import Decimal
from sqlalchemy import select, insert, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.infrastructure.db_schema import shipping_methods_tbl, shipping_rates_tbl, tax_rates_tbl

logger = logging.getLogger(__name__)

STANDARD = "Standard Shipping"
EXPRESS = "Express Shipping"
NEXT_DAY = "Next Day Delivery"

SHIPPING_METHODS = [
    {"name": STANDARD, "description": "Standard delivery service",
     "estimated_days": "5-7 business days", "default_cost": Decimal("10.00")},
    {"name": EXPRESS, "description": "Faster delivery service",
     "estimated_days": "2-3 business days", "default_cost": Decimal("20.00")},
    {"name": NEXT_DAY, "description": "Get it tomorrow!",
     "estimated_days": "1 business day", "default_cost": Decimal("35.00")},
]

# (способ, страна, штат, мин. вес, макс. вес, стоимость)
SHIPPING_RATES = [
    (STANDARD, "US", None, 0, 5, "8.95"),
    (STANDARD, "US", None, 5.01, 10, "12.95"),
    (STANDARD, "US", "CA", 0, 10, "14.95"),
    (EXPRESS, "US", None, 0, 5, "18.95"),
    (EXPRESS, "US", None, 5.01, 10, "24.95"),
    (NEXT_DAY, "US", None, 0, 5, "29.95"),
    (NEXT_DAY, "US", None, 5.01, 10, "39.95"),
    (STANDARD, "CA", None, 0, 10, "15.95"),
    (EXPRESS, "CA", None, 0, 10, "28.95"),
    (STANDARD, "", None, 0, 10, "24.95"),
]

TAX_RATES = [
    ("US", None, "0.0", "No federal sales tax"),
    ("US", "CA", "0.0725", "California state sales tax"),
    ("US", "NY", "0.045", "New York state sales tax"),
    ("US", "TX", "0.0625", "Texas state sales tax"),
    ("CA", None, "0.05", "Canada GST"),
]


async def seed_shipping_data(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """Способы доставки, тарифы и налоги для первого запуска"""
    async with session_factory() as session:
        existing = await session.scalar(select(func.count()).select_from(shipping_methods_tbl))
        if existing:
            logger.info("Способы доставки уже есть, пропускаем seed")
            return False

        method_ids = {}
        for method in SHIPPING_METHODS:
            method_ids[method["name"]] = str(uuid.uuid4())
            await session.execute(
                insert(shipping_methods_tbl).values(id=method_ids[method["name"]], is_active=True, **method)
            )

        await session.execute(
            insert(shipping_rates_tbl),
            [
                {
                    "shipping_method_id": method_ids[name],
                    "country": country,
                    "state": state,
                    "min_weight": min_weight,
                    "max_weight": max_weight,
                    "cost": Decimal(cost),
                }
                for name, country, state, min_weight, max_weight, cost in SHIPPING_RATES
            ]
        )
        await session.execute(
            insert(tax_rates_tbl),
            [
                {"country": country, "state": state, "rate": Decimal(rate), "description": description, "is_active": True}
                for country, state, rate, description in TAX_RATES
            ]
        )
        await session.commit()

    logger.info("Созданы способы доставки, тарифы и налоговые ставки")
    return True
