# modules/booking/routes.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database.connection import get_db
from modules.booking import services
from modules.booking.models import BookingStatus
from modules.booking.schemas import BookingCreate, BookingOut, BookingStatusUpdate, BookingUpdate
from modules.security.deps import get_current_user, require_admin, require_roles
from modules.users.models import UserRole

api = APIRouter(prefix="/api/v1/bookings", tags=["Bookings API"])

require_booker = require_roles(UserRole.TEACHER, UserRole.ADMIN)


# ---------- Queries ----------
@api.get("/", response_model=List[BookingOut])
def list_bookings(
    room_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    status: Optional[BookingStatus] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    _=Depends(get_current_user),
):
    return services.list_bookings(
        db,
        room_id=room_id,
        teacher_id=teacher_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )


@api.get("/mine", response_model=List[BookingOut])
def my_bookings(db: Session = Depends(get_db), me=Depends(require_roles(UserRole.TEACHER))):
    return services.list_bookings(db, teacher_id=me.id, limit=1000)


@api.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: int, db: Session = Depends(get_db), _=Depends(get_current_user)):
    return services.get_booking(db, booking_id)


# ---------- Mutations ----------
@api.post("/", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
def create_booking(payload: BookingCreate, db: Session = Depends(get_db), me=Depends(require_booker)):
    return services.create_booking(
        db,
        requester_id=me.id,
        requester_role=me.role,
        room_id=payload.room_id,
        title=payload.title,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        teacher_id=payload.teacher_id,
    )


@api.put("/{booking_id}", response_model=BookingOut)
def update_booking(
    booking_id: int,
    payload: BookingUpdate,
    db: Session = Depends(get_db),
    me=Depends(require_booker),
):
    return services.update_booking(
        db,
        requester_id=me.id,
        requester_role=me.role,
        booking_id=booking_id,
        room_id=payload.room_id,
        title=payload.title,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        teacher_id=payload.teacher_id,
    )


@api.post("/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: int, db: Session = Depends(get_db), me=Depends(require_booker)):
    return services.cancel_booking(db, requester_id=me.id, requester_role=me.role, booking_id=booking_id)


# alias of POST /{booking_id}/cancel; the row is kept
@api.delete("/{booking_id}", response_model=BookingOut)
def delete_booking(booking_id: int, db: Session = Depends(get_db), me=Depends(require_booker)):
    return services.cancel_booking(db, requester_id=me.id, requester_role=me.role, booking_id=booking_id)


@api.post("/{booking_id}/status", response_model=BookingOut)
def set_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    db: Session = Depends(get_db),
    me=Depends(require_admin),
):
    return services.set_booking_status(
        db,
        requester_id=me.id,
        requester_role=me.role,
        booking_id=booking_id,
        status=payload.status,
    )
