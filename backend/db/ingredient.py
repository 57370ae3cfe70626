import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base


class Ingredient(Base):
    """Stocked raw material. current_stock is only written by services.stock_ledger."""
    __tablename__ = "ingredients"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    unit = Column(String, nullable=False)  # 'kg', 'g', 'l', 'ml', 'pcs', 'pack', 'box'
    unit_cost = Column(Numeric(10, 2), nullable=False, default=0)

    current_stock = Column(Numeric(10, 2), nullable=False, default=0)
    minimum_stock = Column(Numeric(10, 2), nullable=False, default=0)
    maximum_stock = Column(Numeric(10, 2), nullable=True)

    supplier = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_restocked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    recipe_lines = relationship("ProductIngredient", back_populates="ingredient")

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock < self.minimum_stock

    @property
    def to_schema(self):
        """Convert Ingredient model to schema dictionary format"""
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "unit_cost": float(self.unit_cost or 0),
            "current_stock": float(self.current_stock or 0),
            "minimum_stock": float(self.minimum_stock or 0),
            "maximum_stock": float(self.maximum_stock) if self.maximum_stock is not None else None,
            "supplier": self.supplier,
            "is_active": bool(self.is_active),
            "status": "out" if (self.current_stock or 0) <= 0 else ("low" if self.is_low_stock else "ok"),
            "last_restocked_at": self.last_restocked_at.isoformat() if self.last_restocked_at else None,
        }
