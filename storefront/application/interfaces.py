from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Iterable
from storefront.domain.models import (
    Address, CartLine, Coupon, Order, OrderItem, OrderStatus, PaymentStatus,
    Product, ShippingMethod, ShippingRate, ShippingRateData, TaxRate, TaxRateData,
)


class ProductRepository(ABC):
    @abstractmethod
    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        pass

    @abstractmethod
    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Атомарно: stock -= quantity, только если stock >= quantity"""
        pass

    @abstractmethod
    async def increment_stock(self, product_id: str, quantity: int) -> None:
        pass


class AddressRepository(ABC):
    @abstractmethod
    async def get_for_user(self, address_id: str, user_id: str) -> Optional[Address]:
        pass


class CouponRepository(ABC):
    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def increment_usage(self, coupon_id: str, now: datetime) -> bool:
        """Атомарно: used_count += 1, только если купон ещё действует"""
        pass

    @abstractmethod
    async def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def list_all(self) -> List[Coupon]:
        pass

    @abstractmethod
    async def add(self, coupon: Coupon) -> None:
        pass

    @abstractmethod
    async def update(self, coupon: Coupon) -> None:
        """Обновляет всё, кроме кода и счётчика использований"""
        pass

    @abstractmethod
    async def delete(self, coupon_id: str) -> None:
        pass

    @abstractmethod
    async def is_used_by_orders(self, coupon_id: str) -> bool:
        pass


class ShippingRepository(ABC):
    @abstractmethod
    async def get_method(self, method_id: str) -> Optional[ShippingMethod]:
        pass

    @abstractmethod
    async def list_active_methods(self) -> List[ShippingMethod]:
        pass

    @abstractmethod
    async def list_rates(self, method_id: str) -> List[ShippingRate]:
        pass

    @abstractmethod
    async def list_tax_rates(self) -> List[TaxRate]:
        pass

    @abstractmethod
    async def list_methods(self) -> List[ShippingMethod]:
        """Все способы, включая неактивные"""
        pass

    @abstractmethod
    async def add_method(self, method: ShippingMethod) -> None:
        pass

    @abstractmethod
    async def update_method(self, method: ShippingMethod) -> None:
        pass

    @abstractmethod
    async def delete_method(self, method_id: str) -> None:
        """Удаляет способ вместе с его тарифами"""
        pass

    @abstractmethod
    async def is_method_used_by_orders(self, method_id: str) -> bool:
        pass

    @abstractmethod
    async def get_rate(self, rate_id: int) -> Optional[ShippingRate]:
        pass

    @abstractmethod
    async def add_rate(self, rate: ShippingRateData) -> int:
        pass

    @abstractmethod
    async def update_rate(self, rate_id: int, rate: ShippingRateData) -> None:
        pass

    @abstractmethod
    async def delete_rate(self, rate_id: int) -> None:
        pass

    @abstractmethod
    async def list_all_tax_rates(self) -> List[TaxRate]:
        """Все ставки, включая неактивные"""
        pass

    @abstractmethod
    async def get_tax_rate(self, tax_rate_id: int) -> Optional[TaxRate]:
        pass

    @abstractmethod
    async def add_tax_rate(self, tax_rate: TaxRateData) -> int:
        pass

    @abstractmethod
    async def update_tax_rate(self, tax_rate_id: int, tax_rate: TaxRateData) -> None:
        pass

    @abstractmethod
    async def delete_tax_rate(self, tax_rate_id: int) -> None:
        pass


class CartRepository(ABC):
    @abstractmethod
    async def get_lines(self, user_id: str) -> List[CartLine]:
        pass

    @abstractmethod
    async def clear(self, user_id: str) -> None:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_orders(
        self,
        user_id: Optional[str] = None,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[List[Order], int]:
        pass

    @abstractmethod
    async def create(self, order: Order, items: List[OrderItem], coupon_ids: List[str]) -> None:
        pass

    @abstractmethod
    async def update_status(
        self,
        order_id: str,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> None:
        pass

    @abstractmethod
    async def mark_cancelled(self, order_id: str, payment_status: PaymentStatus) -> bool:
        """Атомарно: CANCELLED, только если заказ ещё можно отменить"""
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def addresses(self) -> AddressRepository:
        pass

    @property
    @abstractmethod
    def coupons(self) -> CouponRepository:
        pass

    @property
    @abstractmethod
    def shipping(self) -> ShippingRepository:
        pass

    @property
    @abstractmethod
    def carts(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass
