from datetime import date
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator


ManualStockOperation = Literal["restock", "add", "remove", "usage", "spoilage"]


class StockMovementCreate(BaseModel):
    operation: ManualStockOperation
    quantity: float
    reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _quantity_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("quantity must be greater than zero")
        return v

    @field_validator("reason", "notes")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class UsageReportQuery(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class UsageReportItemRead(BaseModel):
    ingredient_id: UUID
    ingredient_name: str
    unit: str
    total_used: float
    total_cost: float
    order_count: int


class UsageReportPeriod(BaseModel):
    start_date: date
    end_date: date


class UsageReportRead(BaseModel):
    period: UsageReportPeriod
    ingredients: List[UsageReportItemRead]
