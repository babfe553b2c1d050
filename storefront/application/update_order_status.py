import logging
from typing import Optional
from pydantic import BaseModel

from storefront.domain.models import Order, OrderStatus, OrderView, User
from storefront.domain.exceptions import OrderNotFoundError, ForbiddenError
from storefront.application.interfaces import UnitOfWork
from storefront.application.order_views import build_order_view
from storefront.application.retry import write_conflicts_as_domain_error

logger = logging.getLogger(__name__)


class UpdateOrderStatusDTO(BaseModel):
    order_id: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    note: Optional[str] = None


async def restore_stock(uow: UnitOfWork, order: Order) -> None:
    """Компенсация: возвращает на склад все позиции заказа."""
    quantities: dict[str, int] = {}
    for item in order.order_items:
        quantities[item.product] = quantities.get(item.product, 0) + item.quantity

    # Тот же порядок блокировок, что и при списании
    for product_id, quantity in sorted(quantities.items()):
        if await uow.products.increment_stock(product_id, quantity):
            logger.info(f"Возвращено {quantity} шт. товара {product_id} по заказу {order.order_number}")
        else:
            logger.warning(f"Товар {product_id} из заказа {order.order_number} не найден, остаток не возвращен")


async def _load_order(uow: UnitOfWork, order_id: str) -> Order:
    order = await uow.orders.get_by_id(order_id)
    if not order:
        raise OrderNotFoundError("Order not found")
    return order


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: UpdateOrderStatusDTO) -> OrderView:
        with write_conflicts_as_domain_error():
            async with self._uow() as uow:
                order = await _load_order(uow, dto.order_id)
                updated = order.with_status(dto.status, note=dto.note, tracking_number=dto.tracking_number)
                updated = await uow.orders.save_status(updated, expected_version=order.version)

                # Отмена через смену статуса тоже возвращает остатки
                if updated.status == OrderStatus.CANCELLED:
                    await restore_stock(uow, updated)

                await uow.commit()
                logger.info(f"Заказ {order.order_number}: {order.status.value} -> {updated.status.value}")
                return await build_order_view(uow, updated)


class CancelOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, requester: User, order_id: str) -> OrderView:
        with write_conflicts_as_domain_error():
            async with self._uow() as uow:
                order = await _load_order(uow, order_id)
                if order.user_id != requester.id and not requester.is_admin:
                    raise ForbiddenError("Not authorized to cancel this order")

                note = "Cancelled by admin" if requester.is_admin else "Cancelled by customer"
                cancelled = order.with_status(OrderStatus.CANCELLED, note=note)
                cancelled = await uow.orders.save_status(cancelled, expected_version=order.version)
                await restore_stock(uow, cancelled)

                await uow.commit()
                logger.info(f"Заказ {order.order_number} отменен, остатки восстановлены")
                return await build_order_view(uow, cancelled)


class DeleteOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> None:
        with write_conflicts_as_domain_error():
            async with self._uow() as uow:
                order = await _load_order(uow, order_id)
                # Отмененный заказ уже вернул остатки
                if order.restocks_on_delete:
                    await restore_stock(uow, order)
                await uow.orders.delete(order)
                await uow.commit()
                logger.info(f"Заказ {order.order_number} удален")
