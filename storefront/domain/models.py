from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from storefront.domain.exceptions import InvalidStateError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Порядок счастливого пути: двигаться можно только вперед
LIFECYCLE = (OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED)
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class UserRole(str, Enum):
    USER = "user"
    STAFF = "staff"
    MANAGER = "manager"
    ADMIN = "admin"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.STAFF})


class CardType(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    DISCOVER = "discover"
    UNKNOWN = "unknown"


class OrderItem(BaseModel):
    """Снимок позиции на момент заказа, с каталогом не синхронизируется"""
    product: str
    name: str
    price: float
    quantity: int = Field(ge=1)
    image: str = ""


class ShippingAddress(BaseModel):
    full_name: str
    email: str
    phone: str = ""
    address: str
    city: str
    state: str
    zip_code: str
    country: str = "United States"


class StatusHistoryEntry(BaseModel):
    status: OrderStatus
    timestamp: datetime
    note: str = ""


class Order(BaseModel):
    """Domain Entity — заказ (агрегат)"""
    id: str
    order_number: str
    user_id: str
    order_items: list[OrderItem]
    shipping_address: ShippingAddress
    payment_method: str = "card"
    payment_method_id: Optional[str] = None
    address_id: Optional[str] = None
    items_price: float = 0.0
    tax_price: float = 0.0
    shipping_price: float = 0.0
    total_price: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    status_history: list[StatusHistoryEntry] = []
    tracking_number: Optional[str] = None
    order_notes: str = ""
    version: int = 1
    created_at: datetime
    updated_at: datetime

    def can_be_cancelled(self) -> bool:
        """Бизнес-правило: отменить можно только pending или processing"""
        return self.status in CANCELLABLE_STATUSES

    def can_transition_to(self, status: OrderStatus) -> bool:
        if status == OrderStatus.CANCELLED:
            return self.can_be_cancelled()
        if self.status in TERMINAL_STATUSES:
            return False
        return LIFECYCLE.index(status) > LIFECYCLE.index(self.status)

    def with_status(
        self,
        status: OrderStatus,
        note: Optional[str] = None,
        tracking_number: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Order":
        """Возвращает копию заказа с новым статусом и дописанной записью истории.

        Повтор текущего статуса допустим только вместе с трек-номером.
        """
        if status == OrderStatus.CANCELLED and not self.can_be_cancelled():
            raise InvalidStateError(f'Cannot cancel order in "{self.status.value}" status')
        adds_tracking = status == self.status and bool(tracking_number and tracking_number.strip())
        if not adds_tracking and not self.can_transition_to(status):
            raise InvalidStateError(
                f'Cannot change order status from "{self.status.value}" to "{status.value}"'
            )

        now = now or datetime.now(timezone.utc)
        entry = StatusHistoryEntry(
            status=status,
            timestamp=now,
            note=(note or "").strip() or f"Status updated to {status.value}",
        )
        update = {
            "status": status,
            "status_history": [*self.status_history, entry],
            "updated_at": now,
        }
        if tracking_number and tracking_number.strip():
            update["tracking_number"] = tracking_number.strip()
        return self.model_copy(update=update)

    @property
    def restocks_on_delete(self) -> bool:
        return self.status != OrderStatus.CANCELLED


class Product(BaseModel):
    """Value Object — товар из каталога"""
    id: str
    name: str
    price: float
    stock: int
    image: str = ""
    category: str = ""


class User(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class PaymentMethod(BaseModel):
    id: str
    user_id: str
    last_four: str
    card_holder: str
    expiry_month: str
    expiry_year: str
    card_type: CardType
    is_default: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def masked_card_number(self) -> str:
        return f"**** **** **** {self.last_four}"

    @property
    def formatted_expiry(self) -> str:
        return f"{self.expiry_month}/{self.expiry_year[-2:]}"


class AddressType(str, Enum):
    HOME = "home"
    WORK = "work"
    OTHER = "other"


class Address(BaseModel):
    id: str
    user_id: str
    full_name: str
    phone: str = ""
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "United States"
    is_default: bool = False
    address_type: AddressType = AddressType.HOME
    created_at: datetime
    updated_at: datetime


class OrderView(BaseModel):
    """Заказ с разрешенными ссылками для отображения"""
    order: Order
    user: Optional[User] = None
    saved_payment_method: Optional[PaymentMethod] = None
    saved_address: Optional[Address] = None


class OrderStats(BaseModel):
    total_orders: int
    pending: int = 0
    processing: int = 0
    shipped: int = 0
    delivered: int = 0
    cancelled: int = 0
    total_revenue: float = 0.0
    recent_orders: int = 0
