from datetime import date
from typing import Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import staff_manager
from db.database import get_async_session
from db.users import User
from schemas.inventory import (
    StockMovementCreate,
    UsageReportItemRead,
    UsageReportPeriod,
    UsageReportQuery,
    UsageReportRead,
)
from services import stock_ledger
from services.stock_ledger import IngredientNotFound, InvalidMovement, LedgerError

router = APIRouter()


def _movement_out(mv: stock_ledger.StockMovement) -> dict:
    return {
        "ingredient_id": mv.ingredient_id,
        "operation": mv.operation,
        "quantity": float(mv.quantity),
        "previous_stock": float(mv.previous_stock),
        "new_stock": float(mv.new_stock),
    }


@router.get("/low-stock", response_model=List[Dict])
async def list_low_stock_ingredients(
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    ingredients = await stock_ledger.list_low_stock(db)
    return [ing.to_schema for ing in ingredients]


@router.get("/ingredients/{ingredient_id}/low-stock", response_model=Dict)
async def get_ingredient_low_stock(
    ingredient_id: UUID,
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    is_low = await stock_ledger.check_low_stock(db, ingredient_id)
    return {"ingredient_id": ingredient_id, "is_low_stock": is_low}


@router.get("/ingredients/{ingredient_id}/history", response_model=List[Dict])
async def get_ingredient_history(
    ingredient_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await stock_ledger.ingredient_history(db, ingredient_id, limit=limit)
    return [h.to_schema for h in rows]


@router.get("/ingredients/{ingredient_id}/audit", response_model=Dict)
async def audit_ingredient_stock(
    ingredient_id: UUID,
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        audit = await stock_ledger.audit_stock(db, ingredient_id)
    except IngredientNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {
        "ingredient_id": ingredient_id,
        "current_stock": float(audit.current_stock),
        "opening_stock": float(audit.opening_stock),
        "history_total": float(audit.history_total),
        "expected_stock": float(audit.expected_stock),
        "drift": float(audit.drift),
        "movements": audit.movements,
        "is_consistent": audit.is_consistent,
    }


@router.post("/ingredients/{ingredient_id}/movements", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def create_stock_movement(
    ingredient_id: UUID,
    payload: StockMovementCreate,
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        result = await stock_ledger.adjust_stock(
            db,
            ingredient_id,
            payload.operation,
            payload.quantity,
            reason=payload.reason,
            notes=payload.notes,
            user_id=user.id,
        )
    except IngredientNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidMovement as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except LedgerError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to record stock movement: {e}",
        )

    await stock_ledger.dispatch_low_stock_alerts(db, result.alerts)
    return {
        "movement": _movement_out(result.movements[0]),
        "low_stock": bool(result.alerts),
    }


@router.get("/orders/{order_id}/history", response_model=List[Dict])
async def get_order_stock_history(
    order_id: UUID,
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await stock_ledger.order_history(db, order_id)
    return [h.to_schema for h in rows]


@router.get("/reports/usage", response_model=UsageReportRead)
async def get_usage_report(
    start_date: date,
    end_date: date,
    user: User = Depends(staff_manager),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        period = UsageReportQuery(start_date=start_date, end_date=end_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    report = await stock_ledger.usage_report(db, period.start_date, period.end_date)
    return UsageReportRead(
        period=UsageReportPeriod(start_date=report.start_date, end_date=report.end_date),
        ingredients=[
            UsageReportItemRead(
                ingredient_id=it.ingredient_id,
                ingredient_name=it.ingredient_name,
                unit=it.unit,
                total_used=float(it.total_used),
                total_cost=float(it.total_cost),
                order_count=it.order_count,
            )
            for it in report.ingredients
        ],
    )
