import logging
from typing import Optional
from pydantic import BaseModel

from storefront.domain.models import Order, OrderStatus, PaymentStatus
from storefront.domain.exceptions import OrderNotFoundError

logger = logging.getLogger(__name__)


class UpdateOrderStatusDTO(BaseModel):
    order_id: str
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


class UpdateOrderStatusUseCase:
    """Смена статусов администратором.

    Таблица переходов не проверяется: администратор может выставить любой
    статус. Остатки при этом не меняются, возврат товара на склад делает
    только отмена заказа покупателем.
    """

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: UpdateOrderStatusDTO) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(dto.order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {dto.order_id} не найден")

            await uow.orders.update_status(dto.order_id, dto.order_status, dto.payment_status)
            updated = await uow.orders.get_by_id(dto.order_id)
            await uow.commit()

        logger.info(
            f"Заказ {dto.order_id}: {order.order_status.value} -> {updated.order_status.value}, "
            f"оплата {order.payment_status.value} -> {updated.payment_status.value}"
        )
        return updated
