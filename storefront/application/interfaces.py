from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Iterable
from storefront.domain.models import Order, OrderStats, Product, User, PaymentMethod, Address


class ProductRepository(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        pass

    @abstractmethod
    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Списывает quantity только если stock >= quantity. Иначе False."""
        pass

    @abstractmethod
    async def increment_stock(self, product_id: str, quantity: int) -> bool:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def list_all(self) -> List[Order]:
        pass

    @abstractmethod
    async def save_status(self, order: Order, expected_version: int) -> Order:
        pass

    @abstractmethod
    async def delete(self, order: Order) -> None:
        pass

    @abstractmethod
    async def stats(self, recent_since: datetime) -> OrderStats:
        pass


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        pass

    @abstractmethod
    async def lock(self, user_id: str) -> None:
        """Блокирует строку пользователя до конца транзакции."""
        pass


class PaymentMethodRepository(ABC):
    @abstractmethod
    async def count_by_user(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def get_owned(self, payment_method_id: str, user_id: str) -> Optional[PaymentMethod]:
        pass

    @abstractmethod
    async def get_many(self, payment_method_ids: Iterable[str]) -> dict[str, PaymentMethod]:
        pass

    @abstractmethod
    async def get_default(self, user_id: str) -> Optional[PaymentMethod]:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[PaymentMethod]:
        pass

    @abstractmethod
    async def create(self, payment_method: PaymentMethod) -> None:
        pass

    @abstractmethod
    async def update(self, payment_method: PaymentMethod) -> None:
        pass

    @abstractmethod
    async def set_default(self, payment_method_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    async def delete(self, payment_method_id: str, user_id: str) -> bool:
        pass


class AddressRepository(ABC):
    @abstractmethod
    async def get_owned(self, address_id: str, user_id: str) -> Optional[Address]:
        pass

    @abstractmethod
    async def get_many(self, address_ids: Iterable[str]) -> dict[str, Address]:
        pass

    @abstractmethod
    async def find_same_location(
        self, user_id: str, street: str, city: str, state: str, zip_code: str
    ) -> Optional[Address]:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[Address]:
        pass

    @abstractmethod
    async def create(self, address: Address) -> None:
        pass

    @abstractmethod
    async def update(self, address: Address) -> None:
        pass

    @abstractmethod
    async def delete(self, address_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    async def set_default(self, address_id: str, user_id: str) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def users(self) -> UserRepository:
        pass

    @property
    @abstractmethod
    def payment_methods(self) -> PaymentMethodRepository:
        pass

    @property
    @abstractmethod
    def addresses(self) -> AddressRepository:
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass
