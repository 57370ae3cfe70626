import logging
from typing import Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from db.database import get_async_session, Order as OrderModel
from db.users import User
from services import stock_ledger
from services.stock_ledger import LedgerError

logger = logging.getLogger(__name__)

router = APIRouter()

# Statuses from which each transition is refused
_NOT_SERVABLE = {"served", "completed", "cancelled"}
_NOT_CANCELLABLE = {"completed", "cancelled"}


async def _load_order_for(db: AsyncSession, order_id: UUID, refused: set) -> OrderModel:
    res = await db.execute(select(OrderModel).where(OrderModel.id == order_id))
    order = res.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.status in refused:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order is already {order.status}",
        )
    return order


def _transition_out(order_id: UUID, new_status: str, result: stock_ledger.LedgerResult) -> dict:
    return {
        "order_id": order_id,
        "status": new_status,
        "ingredients_count": result.count,
        "inventory_applied": result.applied,
        "low_stock_alerts": [
            {"ingredient_id": a.ingredient_id, "name": a.name, "current_stock": float(a.current_stock),
             "minimum_stock": float(a.minimum_stock)}
            for a in result.alerts
        ],
    }


@router.post("/{order_id}/serve", response_model=Dict)
async def serve_order(
    order_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Mark an order as served and consume its recipe ingredients."""
    order = await _load_order_for(db, order_id, _NOT_SERVABLE)
    order.status = "served"
    # The status change commits together with the stock deduction.
    try:
        result = await stock_ledger.on_order_served(db, order_id, user.id)
    except LedgerError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to serve order: {e}",
        )
    return _transition_out(order_id, "served", result)


@router.post("/{order_id}/cancel", response_model=Dict)
async def cancel_order(
    order_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Cancel an order and give back any ingredients it consumed."""
    order = await _load_order_for(db, order_id, _NOT_CANCELLABLE)
    order.status = "cancelled"
    try:
        result = await stock_ledger.on_order_cancelled(db, order_id, user.id)
    except LedgerError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to cancel order: {e}",
        )
    logger.info("Order %s cancelled by %s", order_id, user.id)
    return _transition_out(order_id, "cancelled", result)
