from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from storefront.domain.models import (
    Address, CartLine, DiscountType, OrderItem, OrderStatus, PaymentStatus, ShippingRateData, TaxRateData,
)
from storefront.application.manage_coupons import CouponDataDTO, CreateCouponDTO
from storefront.application.manage_shipping import ShippingMethodDTO


class OrderLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)

    def to_domain(self) -> CartLine:
        return CartLine(product_id=self.product_id, quantity=self.quantity)


class CreateOrderRequest(BaseModel):
    shipping_address_id: str
    billing_address_id: str
    payment_method: str
    coupon_code: Optional[str] = None
    shipping_method_id: Optional[str] = None
    # Не передано: берём корзину пользователя
    lines: Optional[List[OrderLineRequest]] = None


class UpdateOrderStatusRequest(BaseModel):
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


class OrderResponse(BaseModel):
    id: str
    user_id: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    payment_method: str
    shipping_method_id: Optional[str] = None
    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    items: List[OrderItem]
    coupons: List[str]
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            user_id=order.user_id,
            order_status=order.order_status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            shipping_method_id=order.shipping_method_id,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            shipping_cost=order.shipping_cost,
            tax_amount=order.tax_amount,
            total_amount=order.total_amount,
            items=order.items,
            coupons=order.coupons,
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class OrdersPageResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def from_page(cls, page):
        return cls(
            orders=[OrderResponse.from_domain(o) for o in page.orders],
            total=page.total,
            page=page.page,
            limit=page.limit,
            pages=page.pages
        )


class CouponResponse(BaseModel):
    valid: bool = True
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    description: Optional[str] = None


class ShippingMethodResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    estimated_days: Optional[str] = None
    default_cost: Decimal


class ShippingCalculateRequest(BaseModel):
    address_id: str
    lines: List[OrderLineRequest]


class ShippingEstimateRequest(BaseModel):
    lines: List[OrderLineRequest]
    country: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: dict


class MessageResponse(BaseModel):
    message: str


class CouponUpdateRequest(BaseModel):
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = Field(default=None, ge=1)

    def to_dto(self) -> CouponDataDTO:
        return CouponDataDTO(**self.model_dump())


class CouponCreateRequest(CouponUpdateRequest):
    code: str = Field(min_length=1)

    def to_dto(self) -> CreateCouponDTO:
        return CreateCouponDTO(**self.model_dump())


class ShippingMethodRequest(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    estimated_days: Optional[str] = None
    default_cost: Decimal = Field(ge=0)
    is_active: bool = True

    def to_dto(self) -> ShippingMethodDTO:
        return ShippingMethodDTO(**self.model_dump())


class ShippingRateRequest(BaseModel):
    shipping_method_id: str
    # Пустая страна: тариф по умолчанию
    country: Optional[str] = None
    state: Optional[str] = None
    postal_code_prefix: Optional[str] = None
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    min_weight: Optional[float] = Field(default=None, ge=0)
    max_weight: Optional[float] = Field(default=None, ge=0)
    cost: Decimal = Field(ge=0)

    def to_domain(self) -> ShippingRateData:
        return ShippingRateData(**self.model_dump(exclude={"country"}), country=self.country or "")


class TaxRateRequest(BaseModel):
    country: Optional[str] = None
    state: Optional[str] = None
    postal_code_prefix: Optional[str] = None
    rate: Decimal = Field(ge=0)
    description: Optional[str] = None
    is_active: bool = True

    def to_domain(self) -> TaxRateData:
        return TaxRateData(**self.model_dump(exclude={"country"}), country=self.country or "")
