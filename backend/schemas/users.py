# Pydantic schemas for user-related requests/responses
# fastapi-users provides the base schemas; role is read-only through the API

from typing import Optional
from uuid import UUID

from fastapi_users import schemas


class UserRead(schemas.BaseUser[UUID]):
    username: Optional[str] = None
    role: str


class UserCreate(schemas.BaseUserCreate):
    username: Optional[str] = None


class UserUpdate(schemas.BaseUserUpdate):
    username: Optional[str] = None
