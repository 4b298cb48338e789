# modules/organization/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip_name(v):
    if isinstance(v, str):
        v = v.strip()
    return v


# -------------------------------------------------
# Department Schemas
# -------------------------------------------------

class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class DepartmentUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    user_count: int = 0


# -------------------------------------------------
# Room Schemas
# -------------------------------------------------

class RoomCreate(BaseModel):
    building_id: int = Field(..., gt=0)
    code: str = Field(..., min_length=1, max_length=50)
    name: Optional[str] = Field(None, max_length=200)
    capacity: int = Field(..., ge=1)

    @field_validator("code", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class RoomUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, max_length=200)
    capacity: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("code", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class RoomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    building_id: int
    code: str
    name: Optional[str] = None
    capacity: int
    is_active: bool
    created_at: datetime


# -------------------------------------------------
# Building Schemas
# -------------------------------------------------

class BuildingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def _strip(cls, v):
        return _strip_name(v)


class BuildingUpdate(BuildingCreate):
    pass


class BuildingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    room_count: int = 0


class BuildingDetail(BuildingOut):
    rooms: List[RoomOut] = []
