import asyncio
import sys
from pathlib import Path
from decimal import Decimal

"""
Seed demo data (staff users, ingredients, products, recipes) into the Postgres DB.

Opening stock is booked as a 'restock' movement through the stock ledger so the
ingredient history adds up to current_stock from day one.

This script can be run from either:
- backend/: `uv run python scripts/seed_demo_data.py`
- repo root: `uv run python backend/scripts/seed_demo_data.py`
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from db.database import async_session_maker, create_db_and_tables
from db.users import User
from db.ingredient import Ingredient
from db.product import Product
from db.recipe_ingredient import ProductIngredient
from services import stock_ledger

from fastapi_users.password import PasswordHelper


password_helper = PasswordHelper()

STAFF = [
    ("admin@pos.local", "admin", "admin"),
    ("manager@pos.local", "manager", "manager"),
    ("kitchen@pos.local", "kitchen", "kitchen"),
    ("cashier@pos.local", "cashier", "cashier"),
]

# name, unit, unit_cost, opening stock, minimum stock
INGREDIENTS = [
    ("Beef", "kg", Decimal("12.50"), Decimal("20"), Decimal("5")),
    ("Burger Bun", "pcs", Decimal("0.40"), Decimal("120"), Decimal("30")),
    ("Cheddar", "kg", Decimal("9.00"), Decimal("4"), Decimal("1")),
    ("French Fries", "kg", Decimal("2.20"), Decimal("25"), Decimal("8")),
    ("Tomato", "kg", Decimal("1.80"), Decimal("6"), Decimal("2")),
]

# product name, price, [(ingredient name, quantity per unit)]
PRODUCTS = [
    ("Cheeseburger", Decimal("9.90"), [("Beef", "0.18"), ("Burger Bun", "1"), ("Cheddar", "0.03"), ("Tomato", "0.04")]),
    ("Double Burger", Decimal("13.50"), [("Beef", "0.36"), ("Burger Bun", "1"), ("Tomato", "0.04")]),
    ("Fries", Decimal("3.50"), [("French Fries", "0.20")]),
]


async def get_or_create_user(session, email: str, username: str, role: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=email,
        username=username,
        role=role,
        hashed_password=password_helper.hash(username),
        is_active=True,
        is_superuser=(role == "admin"),
        is_verified=True,
    )
    session.add(user)
    await session.flush()
    return user


async def get_or_create_ingredient(session, name: str, unit: str, unit_cost: Decimal, minimum: Decimal) -> tuple[Ingredient, bool]:
    result = await session.execute(
        select(Ingredient).where(func.lower(Ingredient.name) == name.strip().lower())
    )
    ingredient = result.scalar_one_or_none()
    if ingredient:
        return ingredient, False

    ingredient = Ingredient(
        name=name.strip(),
        unit=unit,
        unit_cost=unit_cost,
        current_stock=Decimal("0"),
        minimum_stock=minimum,
    )
    session.add(ingredient)
    await session.flush()
    return ingredient, True


async def upsert_product(session, name: str, price: Decimal, recipe: list[tuple[str, str]], ingredient_ids: dict) -> Product:
    result = await session.execute(select(Product).where(func.lower(Product.name) == name.lower()))
    product = result.scalar_one_or_none()
    if not product:
        product = Product(name=name, price=price, is_available=True)
        session.add(product)
        await session.flush()

    for (ingredient_name, qty) in recipe:
        ingredient_id = ingredient_ids[ingredient_name]
        existing = await session.execute(
            select(ProductIngredient).where(
                ProductIngredient.product_id == product.id,
                ProductIngredient.ingredient_id == ingredient_id,
            )
        )
        line = existing.scalar_one_or_none()
        if line:
            line.quantity_required = Decimal(qty)
        else:
            session.add(ProductIngredient(product_id=product.id, ingredient_id=ingredient_id, quantity_required=Decimal(qty)))
    await session.flush()
    return product


async def main() -> None:
    await create_db_and_tables()
    async with async_session_maker() as session:
        users = {}
        for (email, username, role) in STAFF:
            users[role] = await get_or_create_user(session, email, username, role)

        ingredient_ids = {}
        opening = []
        for (name, unit, unit_cost, stock, minimum) in INGREDIENTS:
            ing, created = await get_or_create_ingredient(session, name, unit, unit_cost, minimum)
            ingredient_ids[name] = ing.id
            if created:
                opening.append((ing.id, stock))

        for (name, price, recipe) in PRODUCTS:
            await upsert_product(session, name, price, recipe, ingredient_ids)
        await session.commit()

        admin_id = users["admin"].id
        for (ingredient_id, stock) in opening:
            await stock_ledger.adjust_stock(
                session, ingredient_id, "restock", stock, reason="Opening stock", user_id=admin_id
            )

        print(f"Seeded {len(users)} users, {len(ingredient_ids)} ingredients ({len(opening)} new), {len(PRODUCTS)} products")


if __name__ == "__main__":
    asyncio.run(main())
