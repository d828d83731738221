import logging
import secrets
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database import get_session_factory
from storefront.presentation.schemas import (
    CreateOrderRequest, OrderResponse, OrdersPageResponse, UpdateOrderStatusRequest, CouponResponse,
    ShippingMethodResponse, ShippingCalculateRequest, ShippingEstimateRequest, ErrorResponse,
    MessageResponse, CouponCreateRequest, CouponUpdateRequest, ShippingMethodRequest, ShippingRateRequest,
    TaxRateRequest,
)
from storefront.application.create_order import CreateOrderUseCase, CreateOrderDTO
from storefront.application.cancel_order import CancelOrderUseCase
from storefront.application.get_order import GetOrderUseCase, ListOrdersUseCase
from storefront.application.update_order_status import UpdateOrderStatusUseCase, UpdateOrderStatusDTO
from storefront.application.coupons import ValidateCouponUseCase
from storefront.application.manage_coupons import (
    ListCouponsUseCase, GetCouponUseCase, CreateCouponUseCase, UpdateCouponUseCase, DeleteCouponUseCase,
)
from storefront.application.manage_shipping import (
    ListShippingMethodsWithRatesUseCase, ShippingMethodWithRates,
    CreateShippingMethodUseCase, UpdateShippingMethodUseCase, DeleteShippingMethodUseCase,
    CreateShippingRateUseCase, UpdateShippingRateUseCase, DeleteShippingRateUseCase,
    ListTaxRatesUseCase, CreateTaxRateUseCase, UpdateTaxRateUseCase, DeleteTaxRateUseCase,
)
from storefront.application.shipping import (
    CalculateShippingUseCase, EstimateShippingUseCase, ListShippingMethodsUseCase,
    ShippingOptions, ShippingEstimate,
)
from storefront.domain.models import Coupon, OrderStatus, PaymentStatus, ShippingMethod, ShippingRate, TaxRate
from storefront.domain.regions import distance_surcharge
from storefront.domain.exceptions import (
    ValidationError, NotFoundError, ForbiddenError, NotCancellableError,
    InsufficientStockError, CouponLimitReachedError, CouponInvalidError, ProductNotFoundError,
    CouponCodeExistsError, ResourceInUseError,
)
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

SERVER_ERROR = "Внутренняя ошибка сервера"


def _error(status_code: int, e: Exception, **extra) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"message": str(e), **extra})


def _server_error(e: Exception) -> HTTPException:
    logger.exception(f"Необработанная ошибка: {e}")
    return HTTPException(status_code=500, detail={"message": SERVER_ERROR})


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Идентификатор пользователя выставляет сервис аутентификации"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail={"message": "Не аутентифицирован"})
    return x_user_id


def require_admin(x_api_key: Optional[str] = Header(None)) -> None:
    # Сравнение за постоянное время
    if not settings.ADMIN_API_TOKEN or not x_api_key or not secrets.compare_digest(
        x_api_key.encode(), settings.ADMIN_API_TOKEN.encode()
    ):
        raise HTTPException(status_code=403, detail={"message": "Требуются права администратора"})


def _surcharge():
    return distance_surcharge if settings.DISTANCE_SURCHARGE_ENABLED else None


# Фабрики для создания use cases
def get_unit_of_work(session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)):
    return UnitOfWork(session_factory)


def get_create_order_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CreateOrderUseCase(uow, settings.DEFAULT_SHIPPING_COST, _surcharge())


def get_cancel_order_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CancelOrderUseCase(uow)


def get_get_order_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return GetOrderUseCase(uow)


def get_list_orders_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ListOrdersUseCase(uow)


def get_update_order_status_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateOrderStatusUseCase(uow)


def get_validate_coupon_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ValidateCouponUseCase(uow)


def get_list_shipping_methods_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ListShippingMethodsUseCase(uow)


def get_calculate_shipping_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CalculateShippingUseCase(uow, settings.DEFAULT_SHIPPING_COST, _surcharge())


def get_estimate_shipping_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return EstimateShippingUseCase(uow, settings.DEFAULT_SHIPPING_COST, _surcharge())


def get_list_coupons_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ListCouponsUseCase(uow)


def get_get_coupon_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return GetCouponUseCase(uow)


def get_create_coupon_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CreateCouponUseCase(uow)


def get_update_coupon_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateCouponUseCase(uow)


def get_delete_coupon_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return DeleteCouponUseCase(uow)


def get_list_methods_with_rates_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ListShippingMethodsWithRatesUseCase(uow)


def get_create_method_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CreateShippingMethodUseCase(uow)


def get_update_method_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateShippingMethodUseCase(uow)


def get_delete_method_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return DeleteShippingMethodUseCase(uow)


def get_create_rate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CreateShippingRateUseCase(uow)


def get_update_rate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateShippingRateUseCase(uow)


def get_delete_rate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return DeleteShippingRateUseCase(uow)


def get_list_tax_rates_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ListTaxRatesUseCase(uow)


def get_create_tax_rate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CreateTaxRateUseCase(uow)


def get_update_tax_rate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateTaxRateUseCase(uow)


def get_delete_tax_rate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return DeleteTaxRateUseCase(uow)


@router.post(
    "/orders",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    user_id: str = Depends(get_user_id),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Оформить заказ"""
    try:
        dto = CreateOrderDTO(
            user_id=user_id,
            shipping_address_id=request.shipping_address_id,
            billing_address_id=request.billing_address_id,
            payment_method=request.payment_method,
            lines=[line.to_domain() for line in request.lines] if request.lines is not None else None,
            coupon_code=request.coupon_code,
            shipping_method_id=request.shipping_method_id
        )
        order = await use_case(dto)
        return OrderResponse.from_domain(order)

    except ValidationError as e:
        raise _error(400, e)
    except InsufficientStockError as e:
        raise _error(409, e, product_id=e.product_id, available=e.available, required=e.required)
    except CouponLimitReachedError as e:
        raise _error(409, e, code=e.code)
    except ProductNotFoundError as e:
        raise _error(404, e, product_id=e.product_id)
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.get("/orders", response_model=OrdersPageResponse)
async def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Заказы текущего пользователя"""
    result = await use_case(user_id=user_id, page=page, limit=limit)
    return OrdersPageResponse.from_page(result)


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_order(
    order_id: str,
    user_id: str = Depends(get_user_id),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    try:
        order = await use_case(order_id, user_id)
        return OrderResponse.from_domain(order)
    except NotFoundError as e:
        raise _error(404, e)
    except ForbiddenError as e:
        raise _error(403, e)


@router.post(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def cancel_order(
    order_id: str,
    user_id: str = Depends(get_user_id),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    """Отменить заказ (только PENDING или CONFIRMED)"""
    try:
        order = await use_case(order_id, user_id)
        return OrderResponse.from_domain(order)
    except NotFoundError as e:
        raise _error(404, e)
    except ForbiddenError as e:
        raise _error(403, e)
    except NotCancellableError as e:
        raise _error(400, e, order_status=e.status.value)
    except Exception as e:
        raise _server_error(e)


@router.get("/admin/orders", response_model=OrdersPageResponse, dependencies=[Depends(require_admin)])
async def list_all_orders(
    order_status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Все заказы (администратор)"""
    result = await use_case(order_status=order_status, payment_status=payment_status, page=page, limit=limit)
    return OrdersPageResponse.from_page(result)


@router.patch(
    "/admin/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    use_case: UpdateOrderStatusUseCase = Depends(get_update_order_status_use_case)
):
    """Сменить статус заказа (администратор)"""
    try:
        dto = UpdateOrderStatusDTO(
            order_id=order_id,
            order_status=request.order_status,
            payment_status=request.payment_status
        )
        order = await use_case(dto)
        return OrderResponse.from_domain(order)
    except NotFoundError as e:
        raise _error(404, e)


@router.get(
    "/coupons/validate/{code}",
    response_model=CouponResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def validate_coupon(
    code: str,
    use_case: ValidateCouponUseCase = Depends(get_validate_coupon_use_case)
):
    """Проверить купон"""
    try:
        coupon = await use_case(code)
        return CouponResponse(
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            description=coupon.description
        )
    except NotFoundError as e:
        raise _error(404, e, code=code)
    except CouponInvalidError as e:
        raise _error(400, e, code=code, reason=e.reason.value)


@router.get("/shipping/methods", response_model=List[ShippingMethodResponse])
async def list_shipping_methods(
    use_case: ListShippingMethodsUseCase = Depends(get_list_shipping_methods_use_case)
):
    """Активные способы доставки"""
    methods = await use_case()
    return [ShippingMethodResponse(**m.model_dump(exclude={"is_active"})) for m in methods]


@router.post(
    "/shipping/calculate",
    response_model=ShippingOptions,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def calculate_shipping(
    request: ShippingCalculateRequest,
    user_id: str = Depends(get_user_id),
    use_case: CalculateShippingUseCase = Depends(get_calculate_shipping_use_case)
):
    """Варианты доставки и ставка налога для адреса"""
    try:
        return await use_case(user_id, request.address_id, [line.to_domain() for line in request.lines])
    except ValidationError as e:
        raise _error(400, e)
    except NotFoundError as e:
        raise _error(404, e)


@router.post(
    "/shipping/estimate",
    response_model=ShippingEstimate,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def estimate_shipping(
    request: ShippingEstimateRequest,
    use_case: EstimateShippingUseCase = Depends(get_estimate_shipping_use_case)
):
    """Оценка стандартной доставки для корзины"""
    try:
        return await use_case(
            [line.to_domain() for line in request.lines],
            country=request.country,
            state=request.state,
            postal_code=request.postal_code
        )
    except ValidationError as e:
        raise _error(400, e)
    except NotFoundError as e:
        raise _error(404, e)


ADMIN_WRITE_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.get("/admin/coupons", response_model=List[Coupon], dependencies=[Depends(require_admin)])
async def list_coupons(use_case: ListCouponsUseCase = Depends(get_list_coupons_use_case)):
    """Все купоны (администратор)"""
    return await use_case()


@router.get(
    "/admin/coupons/{coupon_id}",
    response_model=Coupon,
    responses={404: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def get_coupon(coupon_id: str, use_case: GetCouponUseCase = Depends(get_get_coupon_use_case)):
    try:
        return await use_case(coupon_id)
    except NotFoundError as e:
        raise _error(404, e)


@router.post(
    "/admin/coupons",
    response_model=Coupon,
    responses=ADMIN_WRITE_RESPONSES,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def create_coupon(
    request: CouponCreateRequest,
    use_case: CreateCouponUseCase = Depends(get_create_coupon_use_case)
):
    """Создать купон (администратор)"""
    try:
        return await use_case(request.to_dto())
    except ValidationError as e:
        raise _error(400, e)
    except CouponCodeExistsError as e:
        raise _error(409, e, code=e.code)
    except Exception as e:
        raise _server_error(e)


@router.put(
    "/admin/coupons/{coupon_id}",
    response_model=Coupon,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def update_coupon(
    coupon_id: str,
    request: CouponUpdateRequest,
    use_case: UpdateCouponUseCase = Depends(get_update_coupon_use_case)
):
    try:
        return await use_case(coupon_id, request.to_dto())
    except ValidationError as e:
        raise _error(400, e)
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.delete(
    "/admin/coupons/{coupon_id}",
    response_model=MessageResponse,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def delete_coupon(coupon_id: str, use_case: DeleteCouponUseCase = Depends(get_delete_coupon_use_case)):
    try:
        await use_case(coupon_id)
        return MessageResponse(message="Купон удалён")
    except NotFoundError as e:
        raise _error(404, e)
    except ResourceInUseError as e:
        raise _error(409, e)
    except Exception as e:
        raise _server_error(e)


@router.get(
    "/admin/shipping/methods",
    response_model=List[ShippingMethodWithRates],
    dependencies=[Depends(require_admin)]
)
async def list_shipping_methods_with_rates(
    use_case: ListShippingMethodsWithRatesUseCase = Depends(get_list_methods_with_rates_use_case)
):
    """Все способы доставки с тарифами (администратор)"""
    return await use_case()


@router.post(
    "/admin/shipping/methods",
    response_model=ShippingMethod,
    responses=ADMIN_WRITE_RESPONSES,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def create_shipping_method(
    request: ShippingMethodRequest,
    use_case: CreateShippingMethodUseCase = Depends(get_create_method_use_case)
):
    try:
        return await use_case(request.to_dto())
    except Exception as e:
        raise _server_error(e)


@router.put(
    "/admin/shipping/methods/{method_id}",
    response_model=ShippingMethod,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def update_shipping_method(
    method_id: str,
    request: ShippingMethodRequest,
    use_case: UpdateShippingMethodUseCase = Depends(get_update_method_use_case)
):
    try:
        return await use_case(method_id, request.to_dto())
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.delete(
    "/admin/shipping/methods/{method_id}",
    response_model=MessageResponse,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def delete_shipping_method(
    method_id: str,
    use_case: DeleteShippingMethodUseCase = Depends(get_delete_method_use_case)
):
    try:
        await use_case(method_id)
        return MessageResponse(message="Способ доставки удалён")
    except NotFoundError as e:
        raise _error(404, e)
    except ResourceInUseError as e:
        raise _error(409, e)
    except Exception as e:
        raise _server_error(e)


@router.post(
    "/admin/shipping/rates",
    response_model=ShippingRate,
    responses=ADMIN_WRITE_RESPONSES,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def create_shipping_rate(
    request: ShippingRateRequest,
    use_case: CreateShippingRateUseCase = Depends(get_create_rate_use_case)
):
    """Создать тариф доставки (администратор)"""
    try:
        return await use_case(request.to_domain())
    except ValidationError as e:
        raise _error(400, e)
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.put(
    "/admin/shipping/rates/{rate_id}",
    response_model=ShippingRate,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def update_shipping_rate(
    rate_id: int,
    request: ShippingRateRequest,
    use_case: UpdateShippingRateUseCase = Depends(get_update_rate_use_case)
):
    try:
        return await use_case(rate_id, request.to_domain())
    except ValidationError as e:
        raise _error(400, e)
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.delete(
    "/admin/shipping/rates/{rate_id}",
    response_model=MessageResponse,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def delete_shipping_rate(rate_id: int, use_case: DeleteShippingRateUseCase = Depends(get_delete_rate_use_case)):
    try:
        await use_case(rate_id)
        return MessageResponse(message="Тариф удалён")
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.get("/admin/shipping/tax-rates", response_model=List[TaxRate], dependencies=[Depends(require_admin)])
async def list_tax_rates(use_case: ListTaxRatesUseCase = Depends(get_list_tax_rates_use_case)):
    """Все налоговые ставки, включая неактивные (администратор)"""
    return await use_case()


@router.post(
    "/admin/shipping/tax-rates",
    response_model=TaxRate,
    responses=ADMIN_WRITE_RESPONSES,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def create_tax_rate(
    request: TaxRateRequest,
    use_case: CreateTaxRateUseCase = Depends(get_create_tax_rate_use_case)
):
    try:
        return await use_case(request.to_domain())
    except ValidationError as e:
        raise _error(400, e)
    except Exception as e:
        raise _server_error(e)


@router.put(
    "/admin/shipping/tax-rates/{tax_rate_id}",
    response_model=TaxRate,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def update_tax_rate(
    tax_rate_id: int,
    request: TaxRateRequest,
    use_case: UpdateTaxRateUseCase = Depends(get_update_tax_rate_use_case)
):
    try:
        return await use_case(tax_rate_id, request.to_domain())
    except ValidationError as e:
        raise _error(400, e)
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)


@router.delete(
    "/admin/shipping/tax-rates/{tax_rate_id}",
    response_model=MessageResponse,
    responses=ADMIN_WRITE_RESPONSES,
    dependencies=[Depends(require_admin)]
)
async def delete_tax_rate(
    tax_rate_id: int,
    use_case: DeleteTaxRateUseCase = Depends(get_delete_tax_rate_use_case)
):
    try:
        await use_case(tax_rate_id)
        return MessageResponse(message="Налоговая ставка удалена")
    except NotFoundError as e:
        raise _error(404, e)
    except Exception as e:
        raise _server_error(e)
