import logging
from datetime import datetime, timezone
from typing import Optional, List, Iterable
from sqlalchemy import select, insert, update, delete, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.exceptions import ConcurrencyConflictError, OrderNumberCollisionError
from storefront.domain.models import (
    Order, OrderStatus, OrderStats, Product, User, PaymentMethod, Address
)
from storefront.infrastructure.db_schema import (
    users_tbl, products_tbl, orders_tbl, payment_methods_tbl, addresses_tbl
)
from storefront.application.interfaces import (
    ProductRepository, OrderRepository, UserRepository, PaymentMethodRepository, AddressRepository
)

logger = logging.getLogger(__name__)


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id.in_(ids))
        )
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        # Условное списание: строка обновится только если остатка хватает
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id, products_tbl.c.stock >= quantity)
            .values(
                stock=products_tbl.c.stock - quantity,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def increment_stock(self, product_id: str, quantity: int) -> bool:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(
                stock=products_tbl.c.stock + quantity,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Product:
        return Product(
            id=row.id,
            name=row.name,
            price=row.price,
            stock=row.stock,
            image=row.image or "",
            category=row.category or ""
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(orders_tbl))
        return result.scalar_one()

    async def create(self, order: Order) -> None:
        data = order.model_dump(mode="json", include={"order_items", "shipping_address", "status_history"})
        stmt = insert(orders_tbl).values(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            order_items=data["order_items"],
            shipping_address=data["shipping_address"],
            payment_method=order.payment_method,
            payment_method_id=order.payment_method_id,
            address_id=order.address_id,
            items_price=order.items_price,
            tax_price=order.tax_price,
            shipping_price=order.shipping_price,
            total_price=order.total_price,
            status=order.status.value,
            status_history=data["status_history"],
            tracking_number=order.tracking_number,
            order_notes=order.order_notes,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            if "order_number" in str(e.orig):
                raise OrderNumberCollisionError(order.order_number) from e
            raise

    async def list_by_user(self, user_id: str) -> List[Order]:
        result = await self._session.execute(
            select(orders_tbl)
            .where(orders_tbl.c.user_id == user_id)
            .order_by(orders_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def list_all(self) -> List[Order]:
        result = await self._session.execute(
            select(orders_tbl).order_by(orders_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def save_status(self, order: Order, expected_version: int) -> Order:
        """Оптимистичная блокировка: запись проходит только при совпадении версии."""
        history = order.model_dump(mode="json", include={"status_history"})["status_history"]
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order.id, orders_tbl.c.version == expected_version)
            .values(
                status=order.status.value,
                status_history=history,
                tracking_number=order.tracking_number,
                version=expected_version + 1,
                updated_at=order.updated_at
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(f"Конфликт версий заказа {order.order_number} (ожидалась {expected_version})")
            raise ConcurrencyConflictError("Order was modified concurrently. Please retry.")
        return order.model_copy(update={"version": expected_version + 1})

    async def delete(self, order: Order) -> None:
        result = await self._session.execute(
            delete(orders_tbl).where(orders_tbl.c.id == order.id, orders_tbl.c.version == order.version)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError("Order was modified concurrently. Please retry.")

    async def stats(self, recent_since: datetime) -> OrderStats:
        total = await self.count()

        by_status = await self._session.execute(
            select(orders_tbl.c.status, func.count()).group_by(orders_tbl.c.status)
        )
        counts = {status.value: 0 for status in OrderStatus}
        for status, count in by_status.fetchall():
            if status in counts:
                counts[status] = count

        revenue = await self._session.execute(
            select(func.coalesce(func.sum(orders_tbl.c.total_price), 0.0)).where(
                orders_tbl.c.status.notin_([OrderStatus.CANCELLED.value, OrderStatus.PENDING.value])
            )
        )
        recent = await self._session.execute(
            select(func.count()).select_from(orders_tbl).where(orders_tbl.c.created_at >= recent_since)
        )
        return OrderStats(
            total_orders=total,
            total_revenue=round(float(revenue.scalar_one()), 2),
            recent_orders=recent.scalar_one(),
            **counts
        )

    def _to_domain(self, row) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            order_number=row.order_number,
            user_id=row.user_id,
            order_items=row.order_items,
            shipping_address=row.shipping_address,
            payment_method=row.payment_method,
            payment_method_id=row.payment_method_id,
            address_id=row.address_id,
            items_price=row.items_price,
            tax_price=row.tax_price,
            shipping_price=row.shipping_price,
            total_price=row.total_price,
            status=OrderStatus(row.status),
            status_history=row.status_history,
            tracking_number=row.tracking_number,
            order_notes=row.order_notes or "",
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self._session.execute(
            select(users_tbl).where(users_tbl.c.id == user_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        result = await self._session.execute(select(users_tbl).where(users_tbl.c.id.in_(ids)))
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def lock(self, user_id: str) -> None:
        # SELECT ... FOR UPDATE; SQLite этот хвост не поддерживает и пропускает
        await self._session.execute(
            select(users_tbl.c.id).where(users_tbl.c.id == user_id).with_for_update()
        )

    def _to_domain(self, row) -> User:
        return User(id=row.id, name=row.name, email=row.email, role=row.role)


class SQLAlchemyPaymentMethodRepository(PaymentMethodRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def count_by_user(self, user_id: str) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(payment_methods_tbl)
            .where(payment_methods_tbl.c.user_id == user_id)
        )
        return result.scalar_one()

    async def get_owned(self, payment_method_id: str, user_id: str) -> Optional[PaymentMethod]:
        result = await self._session.execute(
            select(payment_methods_tbl).where(
                payment_methods_tbl.c.id == payment_method_id,
                payment_methods_tbl.c.user_id == user_id
            )
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_many(self, payment_method_ids: Iterable[str]) -> dict[str, PaymentMethod]:
        ids = set(payment_method_ids)
        if not ids:
            return {}
        result = await self._session.execute(
            select(payment_methods_tbl).where(payment_methods_tbl.c.id.in_(ids))
        )
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def get_default(self, user_id: str) -> Optional[PaymentMethod]:
        result = await self._session.execute(
            select(payment_methods_tbl).where(
                payment_methods_tbl.c.user_id == user_id,
                payment_methods_tbl.c.is_default.is_(True)
            ).order_by(payment_methods_tbl.c.updated_at.desc()).limit(1)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_by_user(self, user_id: str) -> List[PaymentMethod]:
        result = await self._session.execute(
            select(payment_methods_tbl)
            .where(payment_methods_tbl.c.user_id == user_id)
            .order_by(payment_methods_tbl.c.is_default.desc(), payment_methods_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, payment_method: PaymentMethod) -> None:
        stmt = insert(payment_methods_tbl).values(
            id=payment_method.id,
            user_id=payment_method.user_id,
            last_four=payment_method.last_four,
            card_holder=payment_method.card_holder,
            expiry_month=payment_method.expiry_month,
            expiry_year=payment_method.expiry_year,
            card_type=payment_method.card_type.value,
            is_default=payment_method.is_default,
            created_at=payment_method.created_at,
            updated_at=payment_method.updated_at
        )
        await self._session.execute(stmt)

    async def update(self, payment_method: PaymentMethod) -> None:
        stmt = (
            update(payment_methods_tbl)
            .where(
                payment_methods_tbl.c.id == payment_method.id,
                payment_methods_tbl.c.user_id == payment_method.user_id
            )
            .values(
                card_holder=payment_method.card_holder,
                is_default=payment_method.is_default,
                updated_at=payment_method.updated_at
            )
        )
        await self._session.execute(stmt)

    async def set_default(self, payment_method_id: str, user_id: str) -> None:
        # Один оператор: флаг ставится выбранной записи и снимается со всех остальных
        stmt = (
            update(payment_methods_tbl)
            .where(payment_methods_tbl.c.user_id == user_id)
            .values(
                is_default=case((payment_methods_tbl.c.id == payment_method_id, True), else_=False),
                updated_at=datetime.now(timezone.utc)
            )
        )
        await self._session.execute(stmt)

    async def delete(self, payment_method_id: str, user_id: str) -> bool:
        result = await self._session.execute(
            delete(payment_methods_tbl).where(
                payment_methods_tbl.c.id == payment_method_id,
                payment_methods_tbl.c.user_id == user_id
            )
        )
        return result.rowcount == 1

    def _to_domain(self, row) -> PaymentMethod:
        return PaymentMethod(
            id=row.id,
            user_id=row.user_id,
            last_four=row.last_four,
            card_holder=row.card_holder,
            expiry_month=row.expiry_month,
            expiry_year=row.expiry_year,
            card_type=row.card_type,
            is_default=row.is_default,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyAddressRepository(AddressRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_owned(self, address_id: str, user_id: str) -> Optional[Address]:
        result = await self._session.execute(
            select(addresses_tbl).where(addresses_tbl.c.id == address_id, addresses_tbl.c.user_id == user_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_many(self, address_ids: Iterable[str]) -> dict[str, Address]:
        ids = set(address_ids)
        if not ids:
            return {}
        result = await self._session.execute(select(addresses_tbl).where(addresses_tbl.c.id.in_(ids)))
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def find_same_location(
        self, user_id: str, street: str, city: str, state: str, zip_code: str
    ) -> Optional[Address]:
        result = await self._session.execute(
            select(addresses_tbl).where(
                addresses_tbl.c.user_id == user_id,
                addresses_tbl.c.street == street,
                addresses_tbl.c.city == city,
                addresses_tbl.c.state == state,
                addresses_tbl.c.zip_code == zip_code
            ).limit(1)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_by_user(self, user_id: str) -> List[Address]:
        result = await self._session.execute(
            select(addresses_tbl)
            .where(addresses_tbl.c.user_id == user_id)
            .order_by(addresses_tbl.c.is_default.desc(), addresses_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, address: Address) -> None:
        stmt = insert(addresses_tbl).values(
            id=address.id,
            user_id=address.user_id,
            full_name=address.full_name,
            phone=address.phone,
            street=address.street,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
            is_default=address.is_default,
            address_type=address.address_type.value,
            created_at=address.created_at,
            updated_at=address.updated_at
        )
        await self._session.execute(stmt)

    async def update(self, address: Address) -> None:
        stmt = (
            update(addresses_tbl)
            .where(addresses_tbl.c.id == address.id, addresses_tbl.c.user_id == address.user_id)
            .values(
                full_name=address.full_name,
                phone=address.phone,
                street=address.street,
                city=address.city,
                state=address.state,
                zip_code=address.zip_code,
                country=address.country,
                is_default=address.is_default,
                address_type=address.address_type.value,
                updated_at=address.updated_at
            )
        )
        await self._session.execute(stmt)

    async def delete(self, address_id: str, user_id: str) -> bool:
        result = await self._session.execute(
            delete(addresses_tbl).where(addresses_tbl.c.id == address_id, addresses_tbl.c.user_id == user_id)
        )
        return result.rowcount == 1

    async def set_default(self, address_id: str, user_id: str) -> None:
        stmt = (
            update(addresses_tbl)
            .where(addresses_tbl.c.user_id == user_id)
            .values(
                is_default=case((addresses_tbl.c.id == address_id, True), else_=False),
                updated_at=datetime.now(timezone.utc)
            )
        )
        await self._session.execute(stmt)

    def _to_domain(self, row) -> Address:
        return Address(
            id=row.id,
            user_id=row.user_id,
            full_name=row.full_name,
            phone=row.phone or "",
            street=row.street,
            city=row.city,
            state=row.state,
            zip_code=row.zip_code,
            country=row.country,
            is_default=row.is_default,
            address_type=row.address_type,
            created_at=row.created_at,
            updated_at=row.updated_at
        )
