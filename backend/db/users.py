from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import Column, String, Text

from .base import Base


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    username = Column(String, nullable=True, unique=True)
    # 'admin' | 'manager' | 'kitchen' | 'cashier' | 'server'
    role = Column(Text, nullable=False, default="server", index=True)

    @property
    def to_schema(self):
        """Convert User model to schema dictionary format"""
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "role": self.role,
        }
