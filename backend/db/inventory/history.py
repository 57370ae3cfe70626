import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, Text, UniqueConstraint, Uuid, event
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy.orm import relationship

from ..base import Base


ORDER_CONSUMPTION = "order_consumption"
ORDER_CANCELLATION = "order_cancellation"

# Quantities are stored unsigned; the operation decides the direction.
INCREASING_OPERATIONS = frozenset({ORDER_CANCELLATION, "restock", "add"})
DECREASING_OPERATIONS = frozenset({ORDER_CONSUMPTION, "remove", "usage", "spoilage"})


class IngredientHistory(Base):
    __tablename__ = "ingredient_history"
    __table_args__ = (
        # NULL order ids (manual movements) never collide.
        UniqueConstraint("order_id", "ingredient_id", "operation", name="ux_ingredient_history_order_ingredient_op"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ingredient_id = Column(
        Uuid,
        ForeignKey("ingredients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    operation = Column(Text, nullable=False, index=True)
    quantity = Column(Numeric(10, 2), nullable=False)
    previous_stock = Column(Numeric(10, 2), nullable=False)
    new_stock = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    adjusted_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    ingredient = relationship("Ingredient")
    adjusted_by_user = relationship("User")

    @property
    def signed_quantity(self) -> Decimal:
        q = Decimal(self.quantity or 0)
        return q if self.operation in INCREASING_OPERATIONS else -q

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "ingredient_id": self.ingredient_id,
            "order_id": self.order_id,
            "operation": self.operation,
            "quantity": float(self.quantity),
            "previous_stock": float(self.previous_stock),
            "new_stock": float(self.new_stock),
            "reason": self.reason,
            "notes": self.notes,
            "adjusted_by": self.adjusted_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(IngredientHistory, "before_update")
def _history_is_append_only(mapper, connection, target):
    raise RuntimeError(f"ingredient_history row {target.id} is append-only")


@event.listens_for(IngredientHistory, "before_delete")
def _history_is_not_deletable(mapper, connection, target):
    raise RuntimeError(f"ingredient_history row {target.id} is append-only")
