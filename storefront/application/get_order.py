import math
from typing import List, Optional
from pydantic import BaseModel

from storefront.domain.models import Order, OrderStatus, PaymentStatus
from storefront.domain.exceptions import OrderNotFoundError, ForbiddenError


class OrdersPage(BaseModel):
    orders: List[Order]
    total: int
    page: int
    limit: int
    pages: int


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, user_id: Optional[str] = None) -> Order:
        """user_id=None означает доступ администратора"""
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            if user_id is not None and order.user_id != user_id:
                raise ForbiddenError("Нет доступа к заказу")
            return order


class ListOrdersUseCase:
    """Заказы пользователя (или все заказы для администратора) постранично"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        user_id: Optional[str] = None,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> OrdersPage:
        async with self._uow() as uow:
            orders, total = await uow.orders.list_orders(
                user_id=user_id,
                order_status=order_status,
                payment_status=payment_status,
                limit=limit,
                offset=(page - 1) * limit
            )
        return OrdersPage(
            orders=orders,
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0
        )
