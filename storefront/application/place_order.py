import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.domain.exceptions import (
    InvalidInputError, InsufficientStockError, ProductNotFoundError,
    PaymentMethodNotFoundError, AddressNotFoundError
)
from storefront.domain.models import (
    Order, OrderItem, OrderStatus, OrderView, Product, ShippingAddress, StatusHistoryEntry
)
from storefront.domain.order_numbers import generate_order_number
from storefront.application.interfaces import UnitOfWork
from storefront.application.addresses import AddressBook, AddressDTO
from storefront.application.order_views import build_order_view
from storefront.application.payment_methods import PaymentDetailsDTO, PaymentMethodVault
from storefront.application.retry import write_conflicts_as_domain_error

logger = logging.getLogger(__name__)

SHIPPING_REQUIRED_FIELDS = (
    ("full_name", "Full name"),
    ("address", "Address"),
    ("city", "City"),
    ("state", "State"),
    ("zip_code", "Zip code"),
    ("email", "Email"),
)
TOTAL_FIELDS = ("items_price", "tax_price", "shipping_price", "total_price")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderLineDTO(_CamelModel):
    product: Optional[str] = None
    name: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None
    image: Optional[str] = None


class ShippingAddressDTO(_CamelModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    is_default: bool = False


class PlaceOrderDTO(_CamelModel):
    user_id: str
    order_items: list[OrderLineDTO] = []
    shipping_address: Optional[ShippingAddressDTO] = None
    payment_method: Optional[str] = None
    payment_method_id: Optional[str] = None
    payment_details: Optional[PaymentDetailsDTO] = None
    save_payment_method: bool = False
    address_id: Optional[str] = None
    save_shipping_address: bool = False
    items_price: Optional[float] = None
    tax_price: Optional[float] = None
    shipping_price: Optional[float] = None
    total_price: Optional[float] = None
    order_notes: Optional[str] = None


class PlaceOrderUseCase:
    def __init__(self, unit_of_work, vault: PaymentMethodVault, address_book: AddressBook):
        self._uow = unit_of_work
        self._vault = vault
        self._address_book = address_book

    async def __call__(self, order_data: PlaceOrderDTO) -> OrderView:
        logger.info(
            f"Создание заказа для пользователя {order_data.user_id}, позиций: {len(order_data.order_items)}"
        )

        # 1-4. Проверка запроса до любых обращений к БД
        self._validate_request(order_data)
        requested = self._requested_quantities(order_data)

        # 5-11. Одна транзакция: проверка остатков, побочные записи, заказ, списание
        with write_conflicts_as_domain_error():
            return await self._place(order_data, requested)

    async def _place(self, order_data: PlaceOrderDTO, requested: dict[str, int]) -> OrderView:
        async with self._uow() as uow:
            products = await self._check_stock(uow, requested)
            payment_method_id = await self._resolve_payment_method(uow, order_data)
            address_id = await self._resolve_address(uow, order_data)

            order_count = await uow.orders.count()
            order = self._build_order(order_data, products, order_count, payment_method_id, address_id)
            await uow.orders.create(order)

            # Строки товаров блокируются в порядке id
            for product_id, quantity in sorted(requested.items()):
                if not await uow.products.decrement_stock(product_id, quantity):
                    # Остаток успели забрать между проверкой и списанием
                    current = await uow.products.get_by_id(product_id)
                    available = current.stock if current else 0
                    logger.warning(f"Гонка за остаток товара {product_id}: доступно {available}, нужно {quantity}")
                    raise InsufficientStockError(products[product_id].name, available, quantity)

            await uow.commit()
            logger.info(f"Заказ создан: {order.order_number} ({order.id})")

            # 12. Ответ с разрешенными ссылками
            return await build_order_view(uow, order)

    def _validate_request(self, order_data: PlaceOrderDTO) -> None:
        if not order_data.order_items:
            raise InvalidInputError("No order items provided")

        shipping = order_data.shipping_address
        if shipping is None or not (order_data.payment_method or "").strip():
            raise InvalidInputError("Shipping address and payment method are required")

        for name, label in SHIPPING_REQUIRED_FIELDS:
            if not (getattr(shipping, name) or "").strip():
                raise InvalidInputError(f"{label} is required")

        for item in order_data.order_items:
            if not item.product or item.quantity is None or item.price is None:
                raise InvalidInputError("Each item must include product ID, quantity, and price")
            if item.quantity < 1:
                raise InvalidInputError("Quantity must be at least 1")
            if item.price < 0:
                raise InvalidInputError("Price cannot be negative")

        for name in TOTAL_FIELDS:
            value = getattr(order_data, name)
            if value is not None and value < 0:
                raise InvalidInputError(f"{to_camel(name)} cannot be negative")

    def _requested_quantities(self, order_data: PlaceOrderDTO) -> dict[str, int]:
        """Суммарное количество по каждому товару (одна позиция может встречаться дважды)."""
        requested: dict[str, int] = {}
        for item in order_data.order_items:
            requested[item.product] = requested.get(item.product, 0) + item.quantity
        return requested

    async def _check_stock(self, uow: UnitOfWork, requested: dict[str, int]) -> dict[str, Product]:
        products = await uow.products.get_many(requested.keys())
        for product_id in requested:
            if product_id not in products:
                raise ProductNotFoundError(product_id)
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.stock < quantity:
                raise InsufficientStockError(product.name, product.stock, quantity)
        return products

    async def _resolve_payment_method(self, uow: UnitOfWork, order_data: PlaceOrderDTO) -> Optional[str]:
        if order_data.payment_method_id:
            payment_method = await uow.payment_methods.get_owned(order_data.payment_method_id, order_data.user_id)
            if not payment_method:
                raise PaymentMethodNotFoundError("Payment method not found")
            return payment_method.id

        if order_data.save_payment_method:
            details = order_data.payment_details or PaymentDetailsDTO()
            payment_method = await self._vault.save_card(uow, order_data.user_id, details)
            return payment_method.id
        return None

    async def _resolve_address(self, uow: UnitOfWork, order_data: PlaceOrderDTO) -> Optional[str]:
        if order_data.address_id:
            address = await uow.addresses.get_owned(order_data.address_id, order_data.user_id)
            if not address:
                raise AddressNotFoundError("Address not found")
            return address.id

        if order_data.save_shipping_address:
            shipping = order_data.shipping_address
            address = await self._address_book.save_address(
                uow,
                order_data.user_id,
                AddressDTO(
                    full_name=shipping.full_name,
                    phone=shipping.phone,
                    street=shipping.address,
                    city=shipping.city,
                    state=shipping.state,
                    zip_code=shipping.zip_code,
                    country=shipping.country,
                    is_default=shipping.is_default,
                ),
            )
            return address.id
        return None

    def _build_order(
        self,
        order_data: PlaceOrderDTO,
        products: dict[str, Product],
        order_count: int,
        payment_method_id: Optional[str],
        address_id: Optional[str],
    ) -> Order:
        now = datetime.now(timezone.utc)
        shipping = order_data.shipping_address

        items = []
        for line in order_data.order_items:
            product = products[line.product]
            items.append(OrderItem(
                product=product.id,
                name=(line.name or "").strip() or product.name,
                price=line.price,
                quantity=line.quantity,
                image=(line.image or "").strip() or product.image,
            ))

        return Order(
            id=str(uuid.uuid4()),
            order_number=generate_order_number(order_count, now),
            user_id=order_data.user_id,
            order_items=items,
            shipping_address=ShippingAddress(
                full_name=shipping.full_name.strip(),
                email=shipping.email.strip(),
                phone=(shipping.phone or "").strip(),
                address=shipping.address.strip(),
                city=shipping.city.strip(),
                state=shipping.state.strip(),
                zip_code=shipping.zip_code.strip(),
                country=(shipping.country or "").strip() or "United States",
            ),
            payment_method=order_data.payment_method.strip(),
            payment_method_id=payment_method_id,
            address_id=address_id,
            items_price=order_data.items_price or 0.0,
            tax_price=order_data.tax_price or 0.0,
            shipping_price=order_data.shipping_price or 0.0,
            total_price=order_data.total_price or 0.0,
            status=OrderStatus.PENDING,
            status_history=[StatusHistoryEntry(status=OrderStatus.PENDING, timestamp=now, note="Order created")],
            order_notes=(order_data.order_notes or "").strip(),
            created_at=now,
            updated_at=now,
        )
