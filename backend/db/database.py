from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from core.config import settings
from .base import Base

# Register every model on Base.metadata and re-export them for routers.
from .users import User
from .product import Product
from .order import Order, OrderItem
from .ingredient import Ingredient
from .recipe_ingredient import ProductIngredient
from .inventory import IngredientHistory
from .notification import Notification, NotificationPreference
from .system_setting import SystemSetting

engine = create_async_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
