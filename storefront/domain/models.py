from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Округление денежной суммы до центов"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class DiscountType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class CartLine(BaseModel):
    """Value Object — строка корзины"""
    product_id: str
    quantity: int = Field(gt=0)


class Product(BaseModel):
    """Снимок товара из каталога"""
    id: str
    name: str = ""
    price: Decimal
    stock: int
    weight: Optional[float] = None
    free_shipping_threshold: Optional[Decimal] = None

    def shipping_weight(self, quantity: int) -> float:
        return (self.weight or 1.0) * quantity


class Address(BaseModel):
    id: str
    user_id: str
    country: str
    state: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    street: Optional[str] = None


class ShippingMethod(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    estimated_days: Optional[str] = None
    default_cost: Decimal
    is_active: bool = True


class ShippingRateData(BaseModel):
    shipping_method_id: str
    country: str = ""
    state: Optional[str] = None
    postal_code_prefix: Optional[str] = None
    min_order_amount: Optional[Decimal] = None
    max_order_amount: Optional[Decimal] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    cost: Decimal


class ShippingRate(ShippingRateData):
    id: int


class TaxRateData(BaseModel):
    country: str = ""
    state: Optional[str] = None
    postal_code_prefix: Optional[str] = None
    rate: Decimal
    description: Optional[str] = None
    is_active: bool = True


class TaxRate(TaxRateData):
    id: int


class Coupon(BaseModel):
    id: str
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = None
    used_count: int = 0

    def is_within_window(self, now: datetime) -> bool:
        return self.valid_from <= now <= self.valid_until

    def has_uses_left(self) -> bool:
        """Бизнес-правило: лимит не задан или ещё не исчерпан"""
        return self.usage_limit is None or self.used_count < self.usage_limit

    def discount_for(self, subtotal: Decimal) -> Decimal:
        if self.discount_type == DiscountType.FIXED:
            return to_money(min(self.discount_value, subtotal))
        return to_money(subtotal * self.discount_value / 100)


class OrderItem(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class Order(BaseModel):
    """Domain Entity — заказ (агрегат вместе с позициями, адресами и купонами)"""
    id: str
    user_id: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    shipping_address_id: str
    billing_address_id: str
    shipping_method_id: Optional[str] = None
    payment_method: str
    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime
    items: list[OrderItem] = []
    coupons: list[str] = []
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None

    def can_be_cancelled(self) -> bool:
        """Бизнес-правило: отменить можно только PENDING или CONFIRMED"""
        return self.order_status in CANCELLABLE_STATUSES

    def payment_status_after_cancel(self) -> PaymentStatus:
        if self.payment_status == PaymentStatus.PAID:
            return PaymentStatus.REFUNDED
        return PaymentStatus.FAILED
