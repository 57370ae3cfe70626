"""
Shared fixtures: an isolated in-memory SQLite database per test and small
factories for users, ingredients, products and orders.

The application engine (Postgres) is created at import time but never
connected; every test talks to its own aiosqlite engine.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.database import Base, Ingredient, Order, OrderItem, Product, ProductIngredient, User


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make(role: str = "server", *, is_active: bool = True) -> User:
        tag = uuid.uuid4().hex[:8]
        user = User(
            email=f"{role}-{tag}@pos.test",
            username=f"{role}-{tag}",
            hashed_password="x",
            role=role,
            is_active=is_active,
            is_superuser=False,
            is_verified=True,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_ingredient(db):
    async def _make(
        name: str,
        stock="10",
        minimum="0",
        unit_cost="1",
        *,
        unit: str = "kg",
        is_active: bool = True,
    ) -> Ingredient:
        ing = Ingredient(
            name=name,
            unit=unit,
            unit_cost=Decimal(unit_cost),
            current_stock=Decimal(stock),
            minimum_stock=Decimal(minimum),
            is_active=is_active,
        )
        db.add(ing)
        await db.commit()
        return ing

    return _make


@pytest.fixture
def make_product(db):
    async def _make(name: str, recipe=()) -> Product:
        """recipe: iterable of (Ingredient, quantity_required)."""
        product = Product(name=name, price=Decimal("10"))
        db.add(product)
        await db.flush()
        for (ingredient, qty) in recipe:
            db.add(
                ProductIngredient(
                    product_id=product.id,
                    ingredient_id=ingredient.id,
                    quantity_required=Decimal(str(qty)),
                )
            )
        await db.commit()
        return product

    return _make


@pytest.fixture
def make_order(db):
    async def _make(lines=(), status: str = "preparing") -> Order:
        """lines: iterable of (Product, quantity)."""
        order = Order(order_number=uuid.uuid4().hex[:10], table_label="T1", status=status)
        db.add(order)
        await db.flush()
        for (product, qty) in lines:
            db.add(OrderItem(order_id=order.id, product_id=product.id, quantity=qty))
        await db.commit()
        return order

    return _make
