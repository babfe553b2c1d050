from fastapi import APIRouter, Depends, status

from storefront.database import get_session_factory
from storefront.domain.models import User, UserRole
from storefront.presentation.auth import get_current_user, require_roles
from storefront.presentation.errors import http_errors
from storefront.presentation.schemas import (
    CreateOrderRequest, UpdateStatusRequest, OrderEnvelope, OrderListResponse, OrderResponse,
    OrderStatsEnvelope, OrderStatsResponse, MessageResponse, ErrorResponse
)
from storefront.application.place_order import PlaceOrderUseCase, PlaceOrderDTO
from storefront.application.get_order import GetOrderUseCase, ListMyOrdersUseCase, ListOrdersUseCase
from storefront.application.update_order_status import (
    UpdateOrderStatusUseCase, UpdateOrderStatusDTO, CancelOrderUseCase, DeleteOrderUseCase
)
from storefront.application.order_stats import GetOrderStatsUseCase
from storefront.application.payment_methods import PaymentMethodVault
from storefront.application.addresses import AddressBook
from storefront.infrastructure.unit_of_work import UnitOfWork

router = APIRouter()

STAFF = (UserRole.ADMIN, UserRole.MANAGER, UserRole.STAFF)
ERRORS = {code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409, 500)}


# Фабрики для создания use cases
def get_place_order_use_case(session_factory=Depends(get_session_factory)):
    return PlaceOrderUseCase(UnitOfWork(session_factory), PaymentMethodVault(), AddressBook())


def get_get_order_use_case(session_factory=Depends(get_session_factory)):
    return GetOrderUseCase(UnitOfWork(session_factory))


def get_list_my_orders_use_case(session_factory=Depends(get_session_factory)):
    return ListMyOrdersUseCase(UnitOfWork(session_factory))


def get_list_orders_use_case(session_factory=Depends(get_session_factory)):
    return ListOrdersUseCase(UnitOfWork(session_factory))


def get_update_status_use_case(session_factory=Depends(get_session_factory)):
    return UpdateOrderStatusUseCase(UnitOfWork(session_factory))


def get_cancel_order_use_case(session_factory=Depends(get_session_factory)):
    return CancelOrderUseCase(UnitOfWork(session_factory))


def get_delete_order_use_case(session_factory=Depends(get_session_factory)):
    return DeleteOrderUseCase(UnitOfWork(session_factory))


def get_order_stats_use_case(session_factory=Depends(get_session_factory)):
    return GetOrderStatsUseCase(UnitOfWork(session_factory))


@router.post(
    "/orders",
    response_model=OrderEnvelope,
    responses=ERRORS,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    user: User = Depends(get_current_user),
    use_case: PlaceOrderUseCase = Depends(get_place_order_use_case)
):
    """Создать новый заказ"""
    with http_errors("creating order"):
        dto = PlaceOrderDTO(user_id=user.id, **request.model_dump())
        view = await use_case(dto)
    return OrderEnvelope(order=OrderResponse.from_domain(view), message="Order created successfully")


@router.get("/orders/my-orders", response_model=OrderListResponse, responses=ERRORS)
async def get_my_orders(
    user: User = Depends(get_current_user),
    use_case: ListMyOrdersUseCase = Depends(get_list_my_orders_use_case)
):
    """Заказы текущего пользователя, новые первыми"""
    with http_errors("fetching orders"):
        views = await use_case(user)
    return OrderListResponse.from_domain(views)


@router.get("/orders/stats", response_model=OrderStatsEnvelope, responses=ERRORS)
async def get_order_stats(
    user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    use_case: GetOrderStatsUseCase = Depends(get_order_stats_use_case)
):
    with http_errors("fetching order stats"):
        stats = await use_case()
    return OrderStatsEnvelope(stats=OrderStatsResponse.from_domain(stats))


@router.get("/orders", response_model=OrderListResponse, responses=ERRORS)
async def get_orders(
    user: User = Depends(require_roles(*STAFF)),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Все заказы (для персонала)"""
    with http_errors("fetching orders"):
        views = await use_case()
    return OrderListResponse.from_domain(views)


@router.get("/orders/{order_id}", response_model=OrderEnvelope, responses=ERRORS)
async def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    with http_errors("fetching order"):
        view = await use_case(user, order_id)
    return OrderEnvelope(order=OrderResponse.from_domain(view))


@router.put("/orders/{order_id}/status", response_model=OrderEnvelope, responses=ERRORS)
async def update_order_status(
    order_id: str,
    request: UpdateStatusRequest,
    user: User = Depends(require_roles(*STAFF)),
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    with http_errors("updating order status"):
        dto = UpdateOrderStatusDTO(
            order_id=order_id,
            status=request.status,
            tracking_number=request.tracking_number,
            note=request.note
        )
        view = await use_case(dto)
    return OrderEnvelope(order=OrderResponse.from_domain(view), message="Status updated")


@router.put("/orders/{order_id}/cancel", response_model=OrderEnvelope, responses=ERRORS)
async def cancel_order(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    """Отмена заказа владельцем или администратором"""
    with http_errors("cancelling order"):
        view = await use_case(user, order_id)
    return OrderEnvelope(order=OrderResponse.from_domain(view), message="Order cancelled and stock restored")


@router.delete("/orders/{order_id}", response_model=MessageResponse, responses=ERRORS)
async def delete_order(
    order_id: str,
    user: User = Depends(require_roles(UserRole.ADMIN)),
    use_case: DeleteOrderUseCase = Depends(get_delete_order_use_case)
):
    with http_errors("deleting order"):
        await use_case(order_id)
    return MessageResponse(message="Order deleted successfully")
