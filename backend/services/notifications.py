"""
Staff notification router.

One create_notification call runs three steps:
  1. quiet hours  - inside the configured window the notification is dropped
     for everyone (no queueing, no deferred delivery)
  2. preferences  - recipients who opted out of the category are removed;
     missing or unreadable preferences never suppress delivery
  3. persistence  - one unread notifications row per remaining recipient

Quiet hours are read from system_settings on every call unless the caller
passes a NotificationConfig, so tests and batch callers can inject one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.database import Notification, NotificationPreference, SystemSetting, User

logger = logging.getLogger(__name__)

CATEGORY_ORDER = "order"
CATEGORY_INVENTORY = "inventory"
CATEGORY_PAYMENT = "payment"
CATEGORY_SYSTEM = "system"
CATEGORIES = (CATEGORY_ORDER, CATEGORY_INVENTORY, CATEGORY_PAYMENT, CATEGORY_SYSTEM)

# category -> NotificationPreference column; unknown categories use order_updates
_PREFERENCE_FLAGS = {
    CATEGORY_ORDER: "order_updates",
    CATEGORY_INVENTORY: "inventory_alerts",
    CATEGORY_PAYMENT: "payment_notifications",
    CATEGORY_SYSTEM: "system_alerts",
}

QUIET_HOURS_START_KEY = "quiet_hours_start"
QUIET_HOURS_END_KEY = "quiet_hours_end"


class NotificationError(Exception):
    """A notification row could not be written."""


def parse_hour(value: Optional[str]) -> int:
    """Hour component of an ``HH:MM`` string; raises ValueError when malformed."""
    if not value:
        raise ValueError("empty time value")
    return datetime.strptime(value.strip(), "%H:%M").hour


@dataclass(frozen=True)
class NotificationConfig:
    quiet_hours_start: Optional[str] = "22:00"
    quiet_hours_end: Optional[str] = "08:00"

    def quiet_window(self) -> Optional[Tuple[int, int]]:
        """(start_hour, end_hour), or None when either bound does not parse."""
        try:
            return parse_hour(self.quiet_hours_start), parse_hour(self.quiet_hours_end)
        except ValueError:
            return None


def is_quiet_hours(config: NotificationConfig, now: Optional[datetime] = None) -> bool:
    # Only the hour is compared; minutes in the setting and the clock are ignored.
    window = config.quiet_window()
    if window is None:
        return False
    start, end = window
    hour = (now or datetime.now()).hour
    if start > end:
        return hour >= start or hour < end
    return start <= hour < end


async def load_notification_config(db: AsyncSession) -> NotificationConfig:
    try:
        res = await db.execute(
            select(SystemSetting.setting_key, SystemSetting.setting_value)
            .where(SystemSetting.setting_key.in_([QUIET_HOURS_START_KEY, QUIET_HOURS_END_KEY]))
        )
        values = {k: v for (k, v) in res.all()}
    except Exception:
        logger.warning("Could not read quiet hours settings; delivering without suppression", exc_info=True)
        await db.rollback()
        return NotificationConfig(quiet_hours_start=None, quiet_hours_end=None)
    return NotificationConfig(
        quiet_hours_start=values.get(QUIET_HOURS_START_KEY, settings.quiet_hours_start),
        quiet_hours_end=values.get(QUIET_HOURS_END_KEY, settings.quiet_hours_end),
    )


async def active_user_ids(db: AsyncSession, roles: Sequence[str]) -> List[UUID]:
    res = await db.execute(
        select(User.id)
        .where(User.role.in_(list(roles)))
        .where(User.is_active == True)  # noqa: E712
    )
    return list(res.scalars().all())


async def filter_users_by_preferences(
    db: AsyncSession, user_ids: Sequence[UUID], category: str
) -> List[UUID]:
    if not user_ids:
        return []
    flag = getattr(NotificationPreference, _PREFERENCE_FLAGS.get(category, "order_updates"))
    try:
        res = await db.execute(
            select(NotificationPreference.user_id, flag)
            .where(NotificationPreference.user_id.in_(list(user_ids)))
        )
        enabled = {uid: bool(on) for (uid, on) in res.all()}
    except Exception:
        logger.warning("Could not read notification preferences; delivering to all recipients", exc_info=True)
        await db.rollback()
        return list(user_ids)

    # Nobody in the batch explicitly opted in: the filter does not apply.
    if not any(enabled.values()):
        return list(user_ids)
    # Users without a preferences row are implicitly opted in.
    return [uid for uid in user_ids if enabled.get(uid, True)]


async def create_notification(
    db: AsyncSession,
    user_ids: Iterable[UUID],
    category: str,
    title: str,
    message: str,
    *,
    config: Optional[NotificationConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    """Create one notification per interested user. Returns the number of rows written."""
    candidates = list(dict.fromkeys(user_ids))
    if not candidates:
        return 0

    if config is None:
        config = await load_notification_config(db)
    if is_quiet_hours(config, now):
        logger.info("Quiet hours: dropped %s notification %r for %d user(s)", category, title, len(candidates))
        return 0

    recipients = await filter_users_by_preferences(db, candidates, category)
    if not recipients:
        return 0

    user_id = None
    try:
        for user_id in recipients:
            db.add(
                Notification(
                    user_id=user_id,
                    type=category,
                    title=title,
                    message=message,
                    is_read=False,
                )
            )
            await db.flush()
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise NotificationError(f"failed to create notification for user {user_id}: {e}") from e

    logger.debug("Created %s notification %r for %d user(s)", category, title, len(recipients))
    return len(recipients)


async def create_notification_for_role(
    db: AsyncSession,
    role: str,
    category: str,
    title: str,
    message: str,
    *,
    config: Optional[NotificationConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    try:
        user_ids = await active_user_ids(db, [role])
    except Exception:
        logger.warning("Could not resolve users for role %r; %s notification dropped", role, category, exc_info=True)
        await db.rollback()
        return 0
    if not user_ids:
        return 0
    return await create_notification(db, user_ids, category, title, message, config=config, now=now)


async def notify_low_stock(db: AsyncSession, product_name: str, current_stock, minimum_stock) -> int:
    title = "Low Stock"
    message = f"{product_name} has {current_stock} left (minimum: {minimum_stock})"
    return await create_notification_for_role(db, "manager", CATEGORY_INVENTORY, title, message)


async def notify_order_created(db: AsyncSession, order_number: str, table: str) -> int:
    title = f"New Order #{order_number}"
    message = f"New order received for {table}"
    return await create_notification_for_role(db, "kitchen", CATEGORY_ORDER, title, message)


async def notify_system_alert(db: AsyncSession, title: str, message: str) -> int:
    return await create_notification_for_role(db, "admin", CATEGORY_SYSTEM, title, message)
