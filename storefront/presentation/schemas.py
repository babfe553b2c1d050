from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional

from storefront.domain.models import (
    OrderStatus, OrderView, OrderStats, PaymentMethod, Address, User, CardType, AddressType
)
from storefront.application.place_order import OrderLineDTO, ShippingAddressDTO
from storefront.application.payment_methods import PaymentDetailsDTO, PaymentLimits


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOrderRequest(CamelModel):
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


class UpdateStatusRequest(CamelModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    note: Optional[str] = None


class UserSummary(CamelModel):
    id: str
    name: str
    email: str

    @classmethod
    def from_domain(cls, user: User):
        return cls(id=user.id, name=user.name, email=user.email)


class OrderItemResponse(CamelModel):
    product: str
    name: str
    price: float
    quantity: int
    image: str


class ShippingAddressResponse(CamelModel):
    full_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str


class StatusHistoryResponse(CamelModel):
    status: OrderStatus
    timestamp: datetime
    note: str


class PaymentMethodResponse(CamelModel):
    id: str
    card_holder: str
    card_type: CardType
    last_four: str
    masked_card_number: str
    expiry_date: str
    is_default: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, payment_method: PaymentMethod):
        return cls(
            id=payment_method.id,
            card_holder=payment_method.card_holder,
            card_type=payment_method.card_type,
            last_four=payment_method.last_four,
            masked_card_number=payment_method.masked_card_number,
            expiry_date=payment_method.formatted_expiry,
            is_default=payment_method.is_default,
            created_at=payment_method.created_at,
            updated_at=payment_method.updated_at
        )


class AddressResponse(CamelModel):
    id: str
    full_name: str
    phone: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    is_default: bool
    address_type: AddressType
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, address: Address):
        return cls(**address.model_dump(exclude={"user_id"}))


class OrderResponse(CamelModel):
    id: str
    order_number: str
    user: Optional[UserSummary] = None
    order_items: list[OrderItemResponse]
    shipping_address: ShippingAddressResponse
    payment_method: str
    saved_payment_method: Optional[PaymentMethodResponse] = None
    saved_address: Optional[AddressResponse] = None
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float
    status: OrderStatus
    status_history: list[StatusHistoryResponse]
    tracking_number: Optional[str] = None
    order_notes: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, view: OrderView):
        order = view.order
        return cls(
            id=order.id,
            order_number=order.order_number,
            user=UserSummary.from_domain(view.user) if view.user else None,
            order_items=[OrderItemResponse(**item.model_dump()) for item in order.order_items],
            shipping_address=ShippingAddressResponse(**order.shipping_address.model_dump()),
            payment_method=order.payment_method,
            saved_payment_method=(
                PaymentMethodResponse.from_domain(view.saved_payment_method) if view.saved_payment_method else None
            ),
            saved_address=AddressResponse.from_domain(view.saved_address) if view.saved_address else None,
            items_price=order.items_price,
            tax_price=order.tax_price,
            shipping_price=order.shipping_price,
            total_price=order.total_price,
            status=order.status,
            status_history=[StatusHistoryResponse(**entry.model_dump()) for entry in order.status_history],
            tracking_number=order.tracking_number,
            order_notes=order.order_notes,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class OrderEnvelope(CamelModel):
    order: OrderResponse
    message: Optional[str] = None


class OrderListResponse(CamelModel):
    count: int
    orders: list[OrderResponse]

    @classmethod
    def from_domain(cls, views: list[OrderView]):
        return cls(count=len(views), orders=[OrderResponse.from_domain(v) for v in views])


class OrderStatsResponse(CamelModel):
    total_orders: int
    pending: int
    processing: int
    shipped: int
    delivered: int
    cancelled: int
    total_revenue: float
    recent_orders: int

    @classmethod
    def from_domain(cls, stats: OrderStats):
        return cls(**stats.model_dump())


class OrderStatsEnvelope(CamelModel):
    stats: OrderStatsResponse


class PaymentMethodsMetadata(CamelModel):
    payment_methods_count: int
    payment_methods_limit: int
    can_add_more: bool


class PaymentMethodEnvelope(CamelModel):
    data: PaymentMethodResponse
    message: Optional[str] = None
    metadata: Optional[PaymentMethodsMetadata] = None


class PaymentMethodListResponse(CamelModel):
    count: int
    data: list[PaymentMethodResponse]
    metadata: PaymentMethodsMetadata


class PaymentLimitsResponse(CamelModel):
    current_count: int
    limit: int
    can_add_more: bool
    remaining_slots: int

    @classmethod
    def from_domain(cls, limits: PaymentLimits):
        return cls(**limits.model_dump())


class PaymentLimitsEnvelope(CamelModel):
    data: PaymentLimitsResponse


class AddressEnvelope(CamelModel):
    data: AddressResponse
    message: Optional[str] = None


class AddressListResponse(CamelModel):
    count: int
    data: list[AddressResponse]


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    detail: str
    errors: list[str] = Field(default_factory=list)
