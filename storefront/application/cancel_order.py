import logging

from storefront.domain.models import Order
from storefront.domain.exceptions import OrderNotFoundError, ForbiddenError, NotCancellableError
from storefront.application.stock import StockLedger

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, user_id: str) -> Order:
        logger.info(f"Отмена заказа {order_id} пользователем {user_id}")

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            if order.user_id != user_id:
                raise ForbiddenError("Нет доступа к заказу")
            if not order.can_be_cancelled():
                raise NotCancellableError(order_id, order.order_status)

            # Статус меняется условно: из двух параллельных отмен пройдёт одна
            if not await uow.orders.mark_cancelled(order_id, order.payment_status_after_cancel()):
                current = await uow.orders.get_by_id(order_id)
                raise NotCancellableError(order_id, current.order_status)

            await StockLedger(uow.products).release(order.items)

            cancelled = await uow.orders.get_by_id(order_id)
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен CANCELLED, оплата {cancelled.payment_status.value}")
        return cancelled
