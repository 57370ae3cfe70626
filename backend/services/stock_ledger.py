"""
Ingredient stock ledger.

Every change to Ingredient.current_stock goes through
_update_stock_and_add_history(), which applies the delta with one
UPDATE ... RETURNING and appends the matching ingredient_history row in the
same transaction. History is the system of record; current_stock is the
running total of its signed quantities.

Order lifecycle:
- served    -> deduct_ingredients_for_order()  (order_consumption rows)
- cancelled -> restore_ingredients_for_order() (order_cancellation rows that
  add back exactly what was recorded, whatever the recipe says today)

The transactional functions never notify anyone. They return the low-stock
alerts they found and on_order_served() dispatches them after commit, so a
failed notification can never roll back a stock change.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, distinct, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import Ingredient, OrderItem, ProductIngredient
from db.inventory import (
    DECREASING_OPERATIONS,
    INCREASING_OPERATIONS,
    ORDER_CANCELLATION,
    ORDER_CONSUMPTION,
    IngredientHistory,
)
from services import notifications
from services.notifications import NotificationConfig

logger = logging.getLogger(__name__)

ORDER_CONSUMPTION_REASON = "Automatic deduction for order"
ORDER_CANCELLATION_REASON = "Restored due to order cancellation"

# Operator-initiated movements (restock, manual corrections, waste).
MANUAL_OPERATIONS = frozenset({"restock", "add", "remove", "usage", "spoilage"})

LOW_STOCK_ROLES = ("admin", "manager")
LOW_STOCK_TITLE = "Low Stock Alert"

_STOCK_QUANTUM = Decimal("0.01")


class LedgerError(Exception):
    """A ledger transaction failed and was rolled back."""

    def __init__(self, stage: str, *, order_id: Optional[UUID] = None, ingredient_id: Optional[UUID] = None):
        self.stage = stage
        self.order_id = order_id
        self.ingredient_id = ingredient_id
        target = []
        if order_id is not None:
            target.append(f"order {order_id}")
        if ingredient_id is not None:
            target.append(f"ingredient {ingredient_id}")
        super().__init__(f"stock ledger failed at {stage}" + (f" ({', '.join(target)})" if target else ""))


class IngredientNotFound(LookupError):
    pass


class InvalidMovement(ValueError):
    pass


@dataclass(frozen=True)
class LowStockAlert:
    ingredient_id: UUID
    name: str
    current_stock: Decimal
    minimum_stock: Decimal

    @property
    def message(self) -> str:
        return (
            f"Low stock: {self.name} is below minimum level "
            f"({self.current_stock:.2f} < {self.minimum_stock:.2f})"
        )


@dataclass(frozen=True)
class StockMovement:
    ingredient_id: UUID
    operation: str
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal


@dataclass
class LedgerResult:
    movements: List[StockMovement] = field(default_factory=list)
    alerts: List[LowStockAlert] = field(default_factory=list)
    # False when the call was a duplicate and nothing was written
    applied: bool = True

    @property
    def count(self) -> int:
        return len(self.movements)


@dataclass(frozen=True)
class UsageReportItem:
    ingredient_id: UUID
    ingredient_name: str
    unit: str
    total_used: Decimal
    total_cost: Decimal
    order_count: int


@dataclass(frozen=True)
class UsageReport:
    start_date: date
    end_date: date
    ingredients: List[UsageReportItem]


@dataclass(frozen=True)
class StockAudit:
    ingredient_id: UUID
    current_stock: Decimal
    opening_stock: Decimal
    history_total: Decimal
    movements: int

    @property
    def expected_stock(self) -> Decimal:
        return self.opening_stock + self.history_total

    @property
    def drift(self) -> Decimal:
        return self.current_stock - self.expected_stock

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0


def _dec(x) -> Decimal:
    if x is None:
        return Decimal(0)
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def _to_stock_quantity(x) -> Decimal:
    return _dec(x).quantize(_STOCK_QUANTUM, rounding=ROUND_HALF_UP)


async def _update_stock_and_add_history(
    *,
    db: AsyncSession,
    ingredient_id: UUID,
    operation: str,
    quantity: Decimal,
    order_id: Optional[UUID],
    user_id: Optional[UUID],
    reason: Optional[str],
    notes: Optional[str] = None,
) -> Optional[StockMovement]:
    """Apply one movement. Returns None when the ingredient does not exist."""
    if operation in INCREASING_OPERATIONS:
        delta = quantity
    elif operation in DECREASING_OPERATIONS:
        delta = -quantity
    else:
        raise InvalidMovement(f"unknown stock operation {operation!r}")

    now = datetime.utcnow()
    tbl = Ingredient.__table__
    values = {"current_stock": tbl.c.current_stock + delta, "updated_at": now}
    if operation == "restock":
        values["last_restocked_at"] = now
    stmt = (
        update(tbl)
        .where(tbl.c.id == ingredient_id)
        .values(**values)
        .returning(tbl.c.current_stock)
    )
    try:
        new_stock = (await db.execute(stmt)).scalar_one_or_none()
    except Exception as e:
        raise LedgerError("stock update", order_id=order_id, ingredient_id=ingredient_id) from e
    if new_stock is None:
        return None

    new_stock = _to_stock_quantity(new_stock)
    previous_stock = new_stock - delta
    try:
        db.add(
            IngredientHistory(
                ingredient_id=ingredient_id,
                order_id=order_id,
                operation=operation,
                quantity=quantity,
                previous_stock=previous_stock,
                new_stock=new_stock,
                reason=reason,
                notes=notes,
                adjusted_by=user_id,
                created_at=now,
            )
        )
        await db.flush()
    except Exception as e:
        raise LedgerError("history insert", order_id=order_id, ingredient_id=ingredient_id) from e

    return StockMovement(
        ingredient_id=ingredient_id,
        operation=operation,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )


async def _has_order_history(db: AsyncSession, order_id: UUID, operation: str) -> bool:
    res = await db.execute(
        select(func.count())
        .select_from(IngredientHistory)
        .where(IngredientHistory.order_id == order_id)
        .where(IngredientHistory.operation == operation)
    )
    return int(res.scalar_one() or 0) > 0


async def _abort(db: AsyncSession, err: LedgerError) -> LedgerError:
    await db.rollback()
    logger.error("[inventory] %s", err)
    return err


async def deduct_ingredients_for_order(
    db: AsyncSession, order_id: UUID, user_id: Optional[UUID] = None
) -> LedgerResult:
    """Consume recipe ingredients for a served order, in one transaction.

    Requirements of all line items are summed per ingredient, so each touched
    ingredient gets one stock update and one order_consumption row. Stock may
    go negative (oversold). Ingredients that end strictly below their minimum
    are returned as pending alerts.

    A second call for the same order is a no-op with ``applied=False``.
    """
    result = LedgerResult()
    stage = "item fetch"
    try:
        items_res = await db.execute(
            select(OrderItem.product_id, OrderItem.quantity).where(OrderItem.order_id == order_id)
        )
        items = items_res.all()
        if not items:
            await db.commit()
            return result

        stage = "duplicate check"
        if await _has_order_history(db, order_id, ORDER_CONSUMPTION):
            logger.warning("[inventory] order %s already deducted; skipping", order_id)
            await db.commit()
            result.applied = False
            return result

        stage = "recipe fetch"
        required: Dict[UUID, Decimal] = {}
        details: Dict[UUID, Tuple[str, Decimal]] = {}
        for (product_id, quantity) in items:
            recipe_res = await db.execute(
                select(
                    ProductIngredient.ingredient_id,
                    ProductIngredient.quantity_required,
                    Ingredient.name,
                    Ingredient.minimum_stock,
                )
                .join(Ingredient, Ingredient.id == ProductIngredient.ingredient_id)
                .where(ProductIngredient.product_id == product_id)
                .where(Ingredient.is_active == True)  # noqa: E712
            )
            for (ingredient_id, quantity_required, name, minimum_stock) in recipe_res.all():
                amount = _dec(quantity_required) * int(quantity)
                required[ingredient_id] = required.get(ingredient_id, Decimal(0)) + amount
                details[ingredient_id] = (name, _dec(minimum_stock))

        for ingredient_id, amount in required.items():
            amount = _to_stock_quantity(amount)
            if amount <= 0:
                continue
            movement = await _update_stock_and_add_history(
                db=db,
                ingredient_id=ingredient_id,
                operation=ORDER_CONSUMPTION,
                quantity=amount,
                order_id=order_id,
                user_id=user_id,
                reason=ORDER_CONSUMPTION_REASON,
            )
            if movement is None:
                raise LedgerError("stock update", order_id=order_id, ingredient_id=ingredient_id)
            result.movements.append(movement)

            name, minimum_stock = details[ingredient_id]
            if movement.new_stock < minimum_stock:
                result.alerts.append(
                    LowStockAlert(
                        ingredient_id=ingredient_id,
                        name=name,
                        current_stock=movement.new_stock,
                        minimum_stock=minimum_stock,
                    )
                )

        stage = "commit"
        await db.commit()
    except LedgerError as e:
        raise await _abort(db, e)
    except Exception as e:
        raise await _abort(db, LedgerError(stage, order_id=order_id)) from e

    logger.info(
        "[inventory] order %s: deducted %d ingredient(s), %d below minimum",
        order_id, result.count, len(result.alerts),
    )
    return result


async def restore_ingredients_for_order(
    db: AsyncSession, order_id: UUID, user_id: Optional[UUID] = None
) -> LedgerResult:
    """Give back everything a cancelled order consumed, in one transaction.

    Quantities come from the order's order_consumption history rows, not from
    the current recipes. Restoration never produces low-stock alerts.
    """
    result = LedgerResult()
    stage = "history fetch"
    try:
        res = await db.execute(
            select(IngredientHistory.ingredient_id, IngredientHistory.quantity)
            .where(IngredientHistory.order_id == order_id)
            .where(IngredientHistory.operation == ORDER_CONSUMPTION)
            .order_by(IngredientHistory.created_at.asc())
        )
        deductions = res.all()
        if not deductions:
            await db.commit()
            return result

        stage = "duplicate check"
        if await _has_order_history(db, order_id, ORDER_CANCELLATION):
            logger.warning("[inventory] order %s already restored; skipping", order_id)
            await db.commit()
            result.applied = False
            return result

        for (ingredient_id, quantity) in deductions:
            movement = await _update_stock_and_add_history(
                db=db,
                ingredient_id=ingredient_id,
                operation=ORDER_CANCELLATION,
                quantity=_to_stock_quantity(quantity),
                order_id=order_id,
                user_id=user_id,
                reason=ORDER_CANCELLATION_REASON,
            )
            if movement is None:
                raise LedgerError("stock update", order_id=order_id, ingredient_id=ingredient_id)
            result.movements.append(movement)

        stage = "commit"
        await db.commit()
    except LedgerError as e:
        raise await _abort(db, e)
    except Exception as e:
        raise await _abort(db, LedgerError(stage, order_id=order_id)) from e

    logger.info("[inventory] order %s: restored %d ingredient(s)", order_id, result.count)
    return result


async def adjust_stock(
    db: AsyncSession,
    ingredient_id: UUID,
    operation: str,
    quantity,
    *,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> LedgerResult:
    """Record an operator movement (restock, add, remove, usage, spoilage)."""
    if operation not in MANUAL_OPERATIONS:
        raise InvalidMovement(f"operation must be one of {sorted(MANUAL_OPERATIONS)}")
    quantity = _to_stock_quantity(quantity)
    if quantity <= 0:
        raise InvalidMovement("quantity must be greater than zero")

    try:
        res = await db.execute(
            select(Ingredient.name, Ingredient.minimum_stock).where(Ingredient.id == ingredient_id)
        )
        row = res.first()
    except Exception as e:
        raise await _abort(db, LedgerError("ingredient fetch", ingredient_id=ingredient_id)) from e
    if row is None:
        await db.rollback()
        raise IngredientNotFound(f"Ingredient {ingredient_id} not found")

    result = LedgerResult()
    stage = "stock update"
    try:
        movement = await _update_stock_and_add_history(
            db=db,
            ingredient_id=ingredient_id,
            operation=operation,
            quantity=quantity,
            order_id=None,
            user_id=user_id,
            reason=reason or operation,
            notes=notes,
        )
        if movement is None:
            raise LedgerError("stock update", ingredient_id=ingredient_id)
        result.movements.append(movement)
        minimum_stock = _dec(row.minimum_stock)
        if operation in DECREASING_OPERATIONS and movement.new_stock < minimum_stock:
            result.alerts.append(
                LowStockAlert(
                    ingredient_id=ingredient_id,
                    name=row.name,
                    current_stock=movement.new_stock,
                    minimum_stock=minimum_stock,
                )
            )
        stage = "commit"
        await db.commit()
    except LedgerError as e:
        raise await _abort(db, e)
    except Exception as e:
        raise await _abort(db, LedgerError(stage, ingredient_id=ingredient_id)) from e

    logger.info(
        "[inventory] ingredient %s: %s %s (%s -> %s)",
        ingredient_id, operation, quantity, movement.previous_stock, movement.new_stock,
    )
    return result


async def check_low_stock(db: AsyncSession, ingredient_id: UUID) -> bool:
    """True iff current stock is strictly below the minimum. Unknown ingredient -> False."""
    res = await db.execute(
        select(Ingredient.current_stock, Ingredient.minimum_stock).where(Ingredient.id == ingredient_id)
    )
    row = res.first()
    if row is None:
        return False
    return _dec(row.current_stock) < _dec(row.minimum_stock)


async def list_low_stock(db: AsyncSession) -> List[Ingredient]:
    res = await db.execute(
        select(Ingredient)
        .where(Ingredient.is_active == True)  # noqa: E712
        .where(Ingredient.current_stock < Ingredient.minimum_stock)
        .order_by(Ingredient.current_stock.asc(), Ingredient.name.asc())
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


async def ingredient_history(db: AsyncSession, ingredient_id: UUID, limit: int = 100) -> List[IngredientHistory]:
    res = await db.execute(
        select(IngredientHistory)
        .where(IngredientHistory.ingredient_id == ingredient_id)
        .order_by(IngredientHistory.created_at.desc())
        .limit(limit)
    )
    return list(res.scalars().all())


async def order_history(db: AsyncSession, order_id: UUID) -> List[IngredientHistory]:
    res = await db.execute(
        select(IngredientHistory)
        .where(IngredientHistory.order_id == order_id)
        .order_by(IngredientHistory.created_at.asc())
    )
    return list(res.scalars().all())


async def usage_report(db: AsyncSession, start_date: date, end_date: date) -> UsageReport:
    """Consumption per active ingredient between two dates, both inclusive.

    Cost uses the ingredient's current unit_cost, not the cost at the time of
    consumption. Ingredients without consumption are listed with zeros.
    """
    start_dt = datetime.combine(start_date, time.min)
    end_excl = datetime.combine(end_date, time.min) + timedelta(days=1)

    total_used = func.coalesce(func.sum(IngredientHistory.quantity), 0).label("total_used")
    total_cost = func.coalesce(func.sum(IngredientHistory.quantity * Ingredient.unit_cost), 0).label("total_cost")
    order_count = func.count(distinct(IngredientHistory.order_id)).label("order_count")

    stmt = (
        select(Ingredient.id, Ingredient.name, Ingredient.unit, total_used, total_cost, order_count)
        .outerjoin(
            IngredientHistory,
            and_(
                IngredientHistory.ingredient_id == Ingredient.id,
                IngredientHistory.operation == ORDER_CONSUMPTION,
                IngredientHistory.created_at >= start_dt,
                IngredientHistory.created_at < end_excl,
            ),
        )
        .where(Ingredient.is_active == True)  # noqa: E712
        .group_by(Ingredient.id, Ingredient.name, Ingredient.unit)
        .order_by(total_used.desc(), Ingredient.name.asc())
    )
    res = await db.execute(stmt)
    items = [
        UsageReportItem(
            ingredient_id=r.id,
            ingredient_name=r.name,
            unit=r.unit,
            total_used=_to_stock_quantity(r.total_used),
            total_cost=_to_stock_quantity(r.total_cost),
            order_count=int(r.order_count or 0),
        )
        for r in res.all()
    ]
    return UsageReport(start_date=start_date, end_date=end_date, ingredients=items)


async def audit_stock(db: AsyncSession, ingredient_id: UUID) -> StockAudit:
    """Recompute stock from history and compare it with current_stock."""
    res = await db.execute(select(Ingredient.current_stock).where(Ingredient.id == ingredient_id))
    row = res.first()
    if row is None:
        raise IngredientNotFound(f"Ingredient {ingredient_id} not found")
    current_stock = _dec(row.current_stock)

    hist_res = await db.execute(
        select(IngredientHistory)
        .where(IngredientHistory.ingredient_id == ingredient_id)
        .order_by(IngredientHistory.created_at.asc())
    )
    entries = hist_res.scalars().all()
    opening_stock = _dec(entries[0].previous_stock) if entries else current_stock
    history_total = sum((e.signed_quantity for e in entries), Decimal(0))
    return StockAudit(
        ingredient_id=ingredient_id,
        current_stock=current_stock,
        opening_stock=opening_stock,
        history_total=history_total,
        movements=len(entries),
    )


async def dispatch_low_stock_alerts(
    db: AsyncSession,
    alerts: Sequence[LowStockAlert],
    *,
    config: Optional[NotificationConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    """Best-effort delivery of pending alerts to active admins and managers.

    Must run after the ledger transaction committed. Never raises.
    """
    if not alerts:
        return 0
    try:
        user_ids = await notifications.active_user_ids(db, LOW_STOCK_ROLES)
        if not user_ids:
            return 0
        if config is None:
            config = await notifications.load_notification_config(db)
    except Exception:
        logger.warning("[inventory] low stock recipients could not be resolved", exc_info=True)
        await db.rollback()
        return 0

    sent = 0
    for alert in alerts:
        try:
            sent += await notifications.create_notification(
                db,
                user_ids,
                notifications.CATEGORY_INVENTORY,
                LOW_STOCK_TITLE,
                alert.message,
                config=config,
                now=now,
            )
        except Exception:
            logger.exception("[inventory] low stock alert for ingredient %s not delivered", alert.ingredient_id)
    return sent


async def on_order_served(
    db: AsyncSession,
    order_id: UUID,
    user_id: Optional[UUID] = None,
    *,
    config: Optional[NotificationConfig] = None,
    now: Optional[datetime] = None,
) -> LedgerResult:
    result = await deduct_ingredients_for_order(db, order_id, user_id)
    await dispatch_low_stock_alerts(db, result.alerts, config=config, now=now)
    return result


async def on_order_cancelled(db: AsyncSession, order_id: UUID, user_id: Optional[UUID] = None) -> LedgerResult:
    return await restore_ingredients_for_order(db, order_id, user_id)
