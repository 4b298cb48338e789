# modules/users/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from modules.users.models import UserRole


def _strip_name(v):
    if isinstance(v, str):
        v = v.strip()
    return v


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    confirm_password: str
    full_name: str = Field(..., min_length=1, max_length=200)
    role: UserRole
    department_id: Optional[int] = Field(None, gt=0)

    @field_validator("full_name", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    department_id: Optional[int] = Field(None, gt=0)

    @field_validator("full_name", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: str
    email_confirmed: bool
    department_id: Optional[int] = None
    created_at: datetime
