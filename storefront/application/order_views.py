from storefront.domain.models import Order, OrderView
from storefront.application.interfaces import UnitOfWork


async def build_order_views(uow: UnitOfWork, orders: list[Order]) -> list[OrderView]:
    """Подтягивает пользователя, сохраненную карту и адрес одним запросом на каждый тип."""
    users = await uow.users.get_many(o.user_id for o in orders)
    payment_methods = await uow.payment_methods.get_many(
        o.payment_method_id for o in orders if o.payment_method_id
    )
    addresses = await uow.addresses.get_many(o.address_id for o in orders if o.address_id)
    return [
        OrderView(
            order=order,
            user=users.get(order.user_id),
            saved_payment_method=payment_methods.get(order.payment_method_id),
            saved_address=addresses.get(order.address_id),
        )
        for order in orders
    ]


async def build_order_view(uow: UnitOfWork, order: Order) -> OrderView:
    views = await build_order_views(uow, [order])
    return views[0]
