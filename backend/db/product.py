import uuid
from sqlalchemy import Boolean, Column, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from .base import Base


class Product(Base):
    """Sellable menu item. Menu CRUD lives outside this service; the ledger only reads recipes."""
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)

    recipe_lines = relationship("ProductIngredient", back_populates="product", cascade="all, delete-orphan")
