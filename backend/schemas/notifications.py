from typing import Optional

from pydantic import BaseModel, field_validator

from services.notifications import parse_hour


class NotificationPreferencesUpdate(BaseModel):
    order_updates: Optional[bool] = None
    inventory_alerts: Optional[bool] = None
    payment_notifications: Optional[bool] = None
    system_alerts: Optional[bool] = None
    email_enabled: Optional[bool] = None


class QuietHoursUpdate(BaseModel):
    quiet_hours_start: str
    quiet_hours_end: str

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _hh_mm(cls, v: str) -> str:
        v = (v or "").strip()
        try:
            parse_hour(v)
        except ValueError:
            raise ValueError("time must be in HH:MM format")
        return v
