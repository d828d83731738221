import logging
from typing import Iterable, List

from storefront.domain.models import CartLine, OrderItem, Product
from storefront.domain.exceptions import ProductNotFoundError, InsufficientStockError
from storefront.application.interfaces import ProductRepository

logger = logging.getLogger(__name__)


def merge_lines(lines: Iterable[CartLine]) -> List[CartLine]:
    """Складывает количества повторяющихся товаров, сохраняя порядок первого появления"""
    merged: dict[str, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [CartLine(product_id=product_id, quantity=qty) for product_id, qty in merged.items()]


class StockLedger:
    def __init__(self, products: ProductRepository):
        self._products = products

    async def check(self, lines: List[CartLine]) -> dict[str, Product]:
        """Проверка всех строк до любых изменений остатков"""
        products = await self._products.get_many(line.product_id for line in lines)
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise ProductNotFoundError(line.product_id)
            if product.stock < line.quantity:
                raise InsufficientStockError(line.product_id, product.stock, line.quantity)
        return products

    async def reserve(self, lines: List[CartLine]) -> None:
        # Условное списание: при гонке строка не обновится, и весь UoW откатится
        for line in lines:
            if not await self._products.decrement_stock(line.product_id, line.quantity):
                logger.warning(f"Не удалось зарезервировать {line.quantity} шт. товара {line.product_id}")
                current = await self._products.get_many([line.product_id])
                available = current[line.product_id].stock if line.product_id in current else 0
                raise InsufficientStockError(line.product_id, available, line.quantity)

    async def release(self, items: List[OrderItem]) -> None:
        for item in items:
            await self._products.increment_stock(item.product_id, item.quantity)
