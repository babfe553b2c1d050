from storefront.domain.models import OrderView, User
from storefront.domain.exceptions import OrderNotFoundError, ForbiddenError
from storefront.application.order_views import build_order_view, build_order_views


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, requester: User, order_id: str) -> OrderView:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError("Order not found")
            if order.user_id != requester.id and not requester.is_staff:
                raise ForbiddenError("Not authorized to view this order")
            return await build_order_view(uow, order)


class ListMyOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, requester: User) -> list[OrderView]:
        async with self._uow() as uow:
            orders = await uow.orders.list_by_user(requester.id)
            return await build_order_views(uow, orders)


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> list[OrderView]:
        async with self._uow() as uow:
            orders = await uow.orders.list_all()
            return await build_order_views(uow, orders)
