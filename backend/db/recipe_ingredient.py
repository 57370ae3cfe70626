import uuid
from sqlalchemy import Column, ForeignKey, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from .base import Base


class ProductIngredient(Base):
    """Recipe line: quantity of one ingredient consumed per unit of a product sold."""
    __tablename__ = "product_ingredients"
    __table_args__ = (
        UniqueConstraint("product_id", "ingredient_id", name="ux_product_ingredients_product_ingredient"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    ingredient_id = Column(Uuid, ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=False, index=True)

    quantity_required = Column(Numeric(10, 2), nullable=False)

    product = relationship("Product", back_populates="recipe_lines")
    ingredient = relationship("Ingredient", back_populates="recipe_lines")
