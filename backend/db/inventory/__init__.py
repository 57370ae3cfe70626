"""
Ingredient stock ledger.

Models:
- IngredientHistory (append-only stock movements; the system of record for
  Ingredient.current_stock)
"""

from .history import (
    DECREASING_OPERATIONS,
    INCREASING_OPERATIONS,
    ORDER_CANCELLATION,
    ORDER_CONSUMPTION,
    IngredientHistory,
)
