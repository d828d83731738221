"""Многоуровневый подбор тарифа (доставка и налог).

Кандидаты просматриваются по уровням от самого точного к самому общему:

1. страна + штат + префикс индекса (первые 3 символа), если индекс указан;
2. страна + штат, без префикса;
3. страна, штат не задан;
4. тариф по умолчанию (страна = "").

На каждом уровне тариф должен укладываться в границы суммы заказа и веса
(границы включительные, None означает отсутствие ограничения). Внутри уровня побеждает
первый подходящий тариф в порядке кандидатов.
"""
from decimal import Decimal
from typing import Callable, Iterable, Optional, TypeVar
from pydantic import BaseModel

POSTAL_PREFIX_LENGTH = 3
DEFAULT_COUNTRY = ""

R = TypeVar("R")


class RateTarget(BaseModel):
    """Для чего ищем тариф: адрес, сумма заказа и вес"""
    country: str
    state: Optional[str] = None
    postal_code: Optional[str] = None
    order_amount: Decimal = Decimal("0")
    weight: float = 0.0

    @property
    def postal_prefix(self) -> Optional[str]:
        if not self.postal_code:
            return None
        return self.postal_code[:POSTAL_PREFIX_LENGTH]


Tier = Callable[[object, RateTarget], bool]


def _postal_tier(rate, target: RateTarget) -> bool:
    return (
        target.postal_prefix is not None
        and rate.country == target.country
        and rate.state == target.state
        and rate.postal_code_prefix == target.postal_prefix
    )


def _state_tier(rate, target: RateTarget) -> bool:
    return (
        rate.country == target.country
        and rate.state == target.state
        and rate.postal_code_prefix is None
    )


def _country_tier(rate, target: RateTarget) -> bool:
    return rate.country == target.country and rate.state is None


def _default_tier(rate, target: RateTarget) -> bool:
    return rate.country == DEFAULT_COUNTRY


RATE_TIERS: tuple[Tier, ...] = (_postal_tier, _state_tier, _country_tier, _default_tier)


def _in_range(value, low, high) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def within_bounds(rate, target: RateTarget) -> bool:
    # У налоговых ставок границ нет
    return _in_range(
        target.order_amount,
        getattr(rate, "min_order_amount", None),
        getattr(rate, "max_order_amount", None),
    ) and _in_range(
        target.weight,
        getattr(rate, "min_weight", None),
        getattr(rate, "max_weight", None),
    )


def resolve(candidates: Iterable[R], target: RateTarget, tiers: Iterable[Tier] = RATE_TIERS) -> Optional[R]:
    """Самый точный подходящий тариф или None"""
    candidates = list(candidates)
    for tier in tiers:
        for rate in candidates:
            if tier(rate, target) and within_bounds(rate, target):
                return rate
    return None
