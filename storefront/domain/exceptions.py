from enum import Enum


class DomainException(Exception):
    pass


class ValidationError(DomainException):
    pass


class NotFoundError(DomainException):
    pass


class ConflictError(DomainException):
    pass


class ForbiddenError(DomainException):
    pass


class EmptyCartError(ValidationError):
    def __init__(self):
        super().__init__("Корзина пуста")


class InvalidAddressError(ValidationError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Некорректный адрес ({kind})")


class CouponInvalidReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    OUT_OF_WINDOW = "OUT_OF_WINDOW"
    LIMIT_REACHED = "LIMIT_REACHED"


class CouponInvalidError(ValidationError):
    def __init__(self, code: str, reason: CouponInvalidReason):
        self.code = code
        self.reason = reason
        super().__init__(f"Купон {code} недействителен: {reason.value}")


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Товар {product_id} не найден")


class OrderNotFoundError(NotFoundError):
    pass


class ShippingMethodNotFoundError(NotFoundError):
    pass


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: str, available: int, required: int):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(
            f"Недостаточно товара {product_id}. Доступно: {available}, требуется: {required}"
        )


class CouponLimitReachedError(ConflictError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Лимит использования купона {code} исчерпан")


class NotCancellableError(DomainException):
    def __init__(self, order_id: str, status):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Заказ {order_id} нельзя отменить (status: {status.value})")


class CouponNotFoundError(NotFoundError):
    pass


class ShippingRateNotFoundError(NotFoundError):
    pass


class TaxRateNotFoundError(NotFoundError):
    pass


class CouponCodeExistsError(ConflictError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Купон с кодом {code} уже существует")


class ResourceInUseError(ConflictError):
    """Удаление запрещено: на запись ссылаются заказы"""
    pass
