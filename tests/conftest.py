"""Pytest fixtures for storefront tests."""

import asyncio
import uuid
from datetime import date

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from storefront.infrastructure.db_schema import metadata, products_tbl, users_tbl
from storefront.infrastructure.unit_of_work import UnitOfWork


def future_expiry(years_ahead: int = 3) -> str:
    return f"12/{(date.today().year + years_ahead) % 100:02d}"


class Store:
    """Synchronous helpers for seeding and inspecting the test database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def uow(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory)

    def run(self, coro):
        return asyncio.run(coro)

    def execute(self, stmt):
        async def go():
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result

        return self.run(go())

    def _scalar(self, stmt):
        async def go():
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one()

        return self.run(go())

    def add_user(self, name="Alice", role="user") -> str:
        user_id = str(uuid.uuid4())
        self.execute(
            insert(users_tbl).values(id=user_id, name=name, email=f"{user_id}@example.com", role=role)
        )
        return user_id

    def add_product(self, name="Linen Fabric", price=10.0, stock=5, image="/linen.jpg") -> str:
        product_id = str(uuid.uuid4())
        self.execute(
            insert(products_tbl).values(
                id=product_id, name=name, category="fabric", price=price, stock=stock, image=image
            )
        )
        return product_id

    def stock(self, product_id: str) -> int:
        return self._scalar(select(products_tbl.c.stock).where(products_tbl.c.id == product_id))

    def scalars(self, stmt) -> list:
        async def go():
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars())

        return self.run(go())

    def count(self, table) -> int:
        return self._scalar(select(func.count()).select_from(table))


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", poolclass=NullPool)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    asyncio.run(create_schema())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


@pytest.fixture
def customer(store):
    return store.add_user("Alice", role="user")


@pytest.fixture
def admin(store):
    return store.add_user("Root", role="admin")


@pytest.fixture
def shipping_address():
    return {
        "full_name": "Alice Smith",
        "email": "alice@example.com",
        "phone": "555-0100",
        "address": "12 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "country": "United States",
    }


@pytest.fixture
def card_expiry():
    return future_expiry()
