from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from db.database import Ingredient, Notification, NotificationPreference
from services import stock_ledger
from services.notifications import NotificationConfig

NO_QUIET_HOURS = NotificationConfig(quiet_hours_start=None, quiet_hours_end=None)


@pytest_asyncio.fixture
async def staff(make_user):
    return {
        "admin": await make_user("admin"),
        "manager": await make_user("manager"),
        "kitchen": await make_user("kitchen"),
        "retired": await make_user("admin", is_active=False),
    }


@pytest_asyncio.fixture
async def burger_order(make_ingredient, make_product, make_order):
    beef = await make_ingredient("Beef", stock="10", minimum="5", unit_cost="2")
    burger = await make_product("Burger", recipe=[(beef, "3")])
    order = await make_order([(burger, 2)])
    return beef.id, order.id


async def notifications_for(db, user_id):
    res = await db.execute(select(Notification).where(Notification.user_id == user_id))
    return list(res.scalars().all())


async def stock_of(db, ingredient_id) -> Decimal:
    res = await db.execute(select(Ingredient.current_stock).where(Ingredient.id == ingredient_id))
    return res.scalar_one()


@pytest.mark.asyncio
async def test_serving_notifies_admins_and_managers(db, staff, burger_order):
    _, order_id = burger_order

    result = await stock_ledger.on_order_served(db, order_id, staff["kitchen"].id, config=NO_QUIET_HOURS)

    assert len(result.alerts) == 1
    for role in ("admin", "manager"):
        rows = await notifications_for(db, staff[role].id)
        assert len(rows) == 1
        assert rows[0].type == "inventory"
        assert rows[0].title == "Low Stock Alert"
        assert rows[0].message == "Low stock: Beef is below minimum level (4.00 < 5.00)"
        assert rows[0].is_read is False
    assert await notifications_for(db, staff["kitchen"].id) == []
    assert await notifications_for(db, staff["retired"].id) == []


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_deduction(db, staff, burger_order):
    beef_id, order_id = burger_order

    with patch(
        "services.notifications.create_notification",
        AsyncMock(side_effect=RuntimeError("notification store down")),
    ) as create:
        result = await stock_ledger.on_order_served(db, order_id, config=NO_QUIET_HOURS)

    create.assert_awaited_once()
    assert result.count == 1
    assert await stock_of(db, beef_id) == Decimal("4")
    assert len(await stock_ledger.order_history(db, order_id)) == 1


@pytest.mark.asyncio
async def test_recipient_lookup_failure_does_not_undo_deduction(db, staff, burger_order):
    beef_id, order_id = burger_order

    with patch("services.notifications.active_user_ids", AsyncMock(side_effect=RuntimeError("db gone"))):
        result = await stock_ledger.on_order_served(db, order_id, config=NO_QUIET_HOURS)

    assert result.count == 1
    assert await stock_of(db, beef_id) == Decimal("4")


@pytest.mark.asyncio
async def test_quiet_hours_suppress_alerts_but_not_deduction(db, staff, burger_order):
    beef_id, order_id = burger_order
    night = NotificationConfig(quiet_hours_start="22:00", quiet_hours_end="08:00")

    result = await stock_ledger.on_order_served(
        db, order_id, config=night, now=datetime(2026, 3, 14, 23, 15)
    )

    assert len(result.alerts) == 1
    assert await stock_of(db, beef_id) == Decimal("4")
    assert await notifications_for(db, staff["admin"].id) == []
    assert await notifications_for(db, staff["manager"].id) == []


@pytest.mark.asyncio
async def test_manager_opt_out_is_respected(db, staff, burger_order):
    _, order_id = burger_order
    db.add(NotificationPreference(user_id=staff["manager"].id, inventory_alerts=False))
    db.add(NotificationPreference(user_id=staff["admin"].id, inventory_alerts=True))
    await db.commit()

    await stock_ledger.on_order_served(db, order_id, config=NO_QUIET_HOURS)

    assert len(await notifications_for(db, staff["admin"].id)) == 1
    assert await notifications_for(db, staff["manager"].id) == []


@pytest.mark.asyncio
async def test_no_alert_no_notification(db, staff, make_ingredient, make_product, make_order):
    rice = await make_ingredient("Rice", stock="50", minimum="5")
    bowl = await make_product("Rice Bowl", recipe=[(rice, "1")])
    order = await make_order([(bowl, 1)])

    result = await stock_ledger.on_order_served(db, order.id, config=NO_QUIET_HOURS)

    assert result.alerts == []
    assert await notifications_for(db, staff["admin"].id) == []


@pytest.mark.asyncio
async def test_cancellation_never_notifies(db, staff, burger_order):
    beef_id, order_id = burger_order
    await stock_ledger.deduct_ingredients_for_order(db, order_id)

    result = await stock_ledger.on_order_cancelled(db, order_id, staff["manager"].id)

    assert result.alerts == []
    assert await stock_of(db, beef_id) == Decimal("10")
    assert await notifications_for(db, staff["admin"].id) == []
