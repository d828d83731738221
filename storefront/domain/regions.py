"""Фиксированные региональные правила: надбавка за расстояние и НДС Египта.

Таблицы не читаются из БД; при переходе на тарифы из данных их можно
заменить, не трогая алгоритм подбора тарифа.
"""
from decimal import Decimal
from enum import Enum
from typing import Optional


class MethodTier(str, Enum):
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"
    NEXT_DAY = "NEXT_DAY"


class Zone(str, Enum):
    EGYPT = "EGYPT"
    INTERNATIONAL = "INTERNATIONAL"
    COASTAL = "COASTAL"
    CENTRAL = "CENTRAL"
    DOMESTIC = "DOMESTIC"


HOME_COUNTRY = "US"
EGYPT_CODES = frozenset({"EG", "Egypt"})
COASTAL_STATES = frozenset({"CA", "OR", "WA", "NY", "MA", "FL"})
CENTRAL_STATES = frozenset({"TX", "CO", "IL", "MI", "OH"})

EGYPT_VAT_RATE = Decimal("0.14")

SURCHARGES: dict[Zone, dict[MethodTier, Decimal]] = {
    Zone.EGYPT: {
        MethodTier.STANDARD: Decimal("30.00"),
        MethodTier.EXPRESS: Decimal("40.00"),
        MethodTier.NEXT_DAY: Decimal("60.00"),
    },
    Zone.INTERNATIONAL: {
        MethodTier.STANDARD: Decimal("20.00"),
        MethodTier.EXPRESS: Decimal("25.00"),
        MethodTier.NEXT_DAY: Decimal("45.00"),
    },
    Zone.COASTAL: {
        MethodTier.STANDARD: Decimal("7.50"),
        MethodTier.EXPRESS: Decimal("10.00"),
        MethodTier.NEXT_DAY: Decimal("20.00"),
    },
    Zone.CENTRAL: {
        MethodTier.STANDARD: Decimal("5.00"),
        MethodTier.EXPRESS: Decimal("5.00"),
        MethodTier.NEXT_DAY: Decimal("15.00"),
    },
    Zone.DOMESTIC: {
        MethodTier.STANDARD: Decimal("10.00"),
        MethodTier.EXPRESS: Decimal("15.00"),
        MethodTier.NEXT_DAY: Decimal("25.00"),
    },
}


def is_egypt(country: str) -> bool:
    return country in EGYPT_CODES


def method_tier(method_name: str) -> MethodTier:
    name = method_name.lower()
    if "next day" in name:
        return MethodTier.NEXT_DAY
    if "express" in name:
        return MethodTier.EXPRESS
    return MethodTier.STANDARD


def zone_for(country: str, state: Optional[str]) -> Zone:
    if is_egypt(country):
        return Zone.EGYPT
    if country != HOME_COUNTRY:
        return Zone.INTERNATIONAL
    if state in COASTAL_STATES:
        return Zone.COASTAL
    if state in CENTRAL_STATES:
        return Zone.CENTRAL
    return Zone.DOMESTIC


def distance_surcharge(country: str, state: Optional[str], method_name: str) -> Decimal:
    """Надбавка за расстояние поверх базовой стоимости доставки"""
    return SURCHARGES[zone_for(country, state)][method_tier(method_name)]


def tax_rate_override(country: str) -> Optional[Decimal]:
    """Фиксированная ставка, минуя подбор по тарифам (НДС Египта 14%)"""
    if is_egypt(country):
        return EGYPT_VAT_RATE
    return None
