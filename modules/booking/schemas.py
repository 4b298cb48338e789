# modules/booking/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.booking.models import BookingStatus
from modules.common.timeutils import to_naive_utc
from modules.organization.schemas import RoomOut


def _normalize_status(value) -> Optional[BookingStatus]:
    if value is None:
        return None
    if isinstance(value, BookingStatus):
        return value
    if hasattr(value, "value"):
        value = value.value
    s = str(value).strip()
    if "." in s:
        s = s.split(".")[-1]
    s = s.capitalize()
    if s == "Canceled":
        s = "Cancelled"
    return BookingStatus(s)


class _BookingWindow(BaseModel):
    room_id: int = Field(..., gt=0)
    # length/blank checks live in the engine so they surface as InvalidTitle
    title: str
    starts_at: datetime
    ends_at: datetime

    @field_validator("starts_at", "ends_at")
    @classmethod
    def _as_utc(cls, v):
        return to_naive_utc(v)


class BookingCreate(_BookingWindow):
    # only honoured for admins; teachers always book for themselves
    teacher_id: Optional[int] = None


class BookingUpdate(_BookingWindow):
    teacher_id: Optional[int] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v):
        return _normalize_status(v)


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    room_id: int
    teacher_id: int
    title: str
    starts_at: datetime
    ends_at: datetime
    status: BookingStatus
    created_at: datetime
    room: Optional[RoomOut] = None
