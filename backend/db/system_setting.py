from datetime import datetime
from sqlalchemy import Column, DateTime, String, Text

from .base import Base


class SystemSetting(Base):
    __tablename__ = "system_settings"

    setting_key = Column(String, primary_key=True)
    setting_value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
