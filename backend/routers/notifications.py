from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user, require_roles
from db.database import (
    get_async_session,
    Notification as NotificationModel,
    NotificationPreference as NotificationPreferenceModel,
    SystemSetting as SystemSettingModel,
)
from db.users import User
from schemas.notifications import NotificationPreferencesUpdate, QuietHoursUpdate
from services.notifications import (
    CATEGORIES,
    QUIET_HOURS_END_KEY,
    QUIET_HOURS_START_KEY,
    load_notification_config,
)

router = APIRouter()


async def _get_own_notification(db: AsyncSession, user: User, notification_id: UUID) -> NotificationModel:
    res = await db.execute(
        select(NotificationModel)
        .where(NotificationModel.id == notification_id)
        .where(NotificationModel.user_id == user.id)
    )
    notif = res.scalar_one_or_none()
    if not notif:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notif


@router.get("/", response_model=List[Dict])
async def list_notifications(
    type: Optional[str] = Query(None),
    is_read: Optional[bool] = None,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    if type is not None and type not in CATEGORIES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown notification type: {type}")
    stmt = select(NotificationModel).where(NotificationModel.user_id == user.id)
    if type:
        stmt = stmt.where(NotificationModel.type == type)
    if is_read is not None:
        stmt = stmt.where(NotificationModel.is_read == is_read)
    stmt = stmt.order_by(NotificationModel.created_at.desc()).limit(100)
    res = await db.execute(stmt)
    return [n.to_schema for n in res.scalars().all()]


@router.get("/unread-count", response_model=Dict)
async def unread_count(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(func.count())
        .select_from(NotificationModel)
        .where(NotificationModel.user_id == user.id)
        .where(NotificationModel.is_read == False)  # noqa: E712
    )
    return {"notifications": int(res.scalar_one() or 0)}


@router.patch("/{notification_id}/read", response_model=Dict)
async def mark_notification_read(
    notification_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    notif = await _get_own_notification(db, user, notification_id)
    if not notif.is_read:
        notif.is_read = True
        notif.read_at = datetime.utcnow()
        await db.commit()
        await db.refresh(notif)
    return notif.to_schema


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    notif = await _get_own_notification(db, user, notification_id)
    await db.delete(notif)
    await db.commit()


@router.get("/preferences", response_model=Dict)
async def get_preferences(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(NotificationPreferenceModel).where(NotificationPreferenceModel.user_id == user.id)
    )
    prefs = res.scalar_one_or_none()
    if not prefs:
        # No row means every category is delivered.
        return NotificationPreferenceModel(
            user_id=user.id,
            order_updates=True,
            inventory_alerts=True,
            payment_notifications=True,
            system_alerts=True,
            email_enabled=False,
        ).to_schema
    return prefs.to_schema


@router.put("/preferences", response_model=Dict)
async def update_preferences(
    payload: NotificationPreferencesUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(NotificationPreferenceModel).where(NotificationPreferenceModel.user_id == user.id)
    )
    prefs = res.scalar_one_or_none()
    if not prefs:
        prefs = NotificationPreferenceModel(
            user_id=user.id,
            order_updates=True,
            inventory_alerts=True,
            payment_notifications=True,
            system_alerts=True,
            email_enabled=False,
        )
        db.add(prefs)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(prefs, key, value)
    await db.commit()
    await db.refresh(prefs)
    return prefs.to_schema


@router.get("/quiet-hours", response_model=Dict)
async def get_quiet_hours(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    config = await load_notification_config(db)
    return {
        "quiet_hours_start": config.quiet_hours_start,
        "quiet_hours_end": config.quiet_hours_end,
    }


@router.put("/quiet-hours", response_model=Dict)
async def update_quiet_hours(
    payload: QuietHoursUpdate,
    user: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_async_session),
):
    for key, value in (
        (QUIET_HOURS_START_KEY, payload.quiet_hours_start),
        (QUIET_HOURS_END_KEY, payload.quiet_hours_end),
    ):
        setting = await db.get(SystemSettingModel, key)
        if setting:
            setting.setting_value = value
        else:
            db.add(SystemSettingModel(setting_key=key, setting_value=value))
    await db.commit()
    return {
        "quiet_hours_start": payload.quiet_hours_start,
        "quiet_hours_end": payload.quiet_hours_end,
    }
