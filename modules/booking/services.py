# modules/booking/services.py
"""
Booking engine.

Every mutating operation receives the requester's id and role explicitly and
runs its authority check before touching the store. Overlap uses the half-open
test ``existing.starts_at < new.ends_at AND existing.ends_at > new.starts_at``
over bookings that are not Cancelled.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from config.settings import email_settings
from modules.common.email_service import EmailService
from modules.common.errors import (
    AlreadyCancelled,
    AuthorizationDenied,
    BookingNotFound,
    DomainError,
    InvalidStatusTransition,
    InvalidTimeOrder,
    InvalidTitle,
    PastStartTime,
    RoomInactive,
    RoomNotFound,
    SlotConflict,
    TeacherNotFound,
    ValidationFailed,
)
from modules.common.timeutils import to_naive_utc, utcnow
from modules.organization.models import Room
from modules.users.models import User, UserRole

from .models import ALLOWED_TRANSITIONS, Booking, BookingStatus

logger = logging.getLogger(__name__)

email_svc = EmailService(email_settings)

MAX_TITLE_LENGTH = 200

RoleLike = Union[UserRole, str]


# ----------------------------- authority -----------------------------
def _role(requester_role: RoleLike) -> UserRole:
    try:
        return UserRole(requester_role)
    except ValueError:
        raise AuthorizationDenied("Unknown role")


def _require_booking_role(requester_role: RoleLike) -> UserRole:
    role = _role(requester_role)
    if role not in (UserRole.ADMIN, UserRole.TEACHER):
        raise AuthorizationDenied("Only teachers and admins can manage bookings")
    return role


def _require_owner_or_admin(role: UserRole, requester_id: int, booking: Booking) -> None:
    if role == UserRole.TEACHER and booking.teacher_id != requester_id:
        raise AuthorizationDenied("Teachers can only modify their own bookings")


# ----------------------------- validation ----------------------------
def _get_bookable_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if not room:
        raise RoomNotFound("RoomId not found", field="room_id")
    if not room.is_active:
        raise RoomInactive("Room is inactive", field="room_id")
    return room


def _get_teacher(db: Session, teacher_id: Optional[int]) -> User:
    if teacher_id is None:
        raise ValidationFailed("TeacherId is required", field="teacher_id")
    teacher = db.get(User, teacher_id)
    if not teacher or teacher.role != UserRole.TEACHER.value:
        raise TeacherNotFound("TeacherId must belong to a Teacher", field="teacher_id")
    return teacher


def _clean_title(title: Optional[str]) -> str:
    if title is None or not title.strip() or len(title) > MAX_TITLE_LENGTH:
        raise InvalidTitle(f"Title is required and must be <= {MAX_TITLE_LENGTH} characters", field="title")
    return title.strip()


def _check_window(starts_at: datetime, ends_at: datetime, now: datetime) -> None:
    if starts_at <= now:
        raise PastStartTime("StartsAt must be in the future", field="starts_at")
    if ends_at <= starts_at:
        raise InvalidTimeOrder("EndsAt must be after StartsAt", field="ends_at")


# -------------------------- overlap guard --------------------------
def _lock_room(db: Session, room_id: int) -> None:
    """
    Serialize writers per room for the rest of the transaction. The UPDATE takes
    a row lock (or SQLite's write lock) that is held until commit/rollback.
    """
    res = db.execute(
        update(Room)
        .where(Room.id == room_id)
        .values(lock_version=Room.lock_version + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise RoomNotFound("RoomId not found", field="room_id")


def find_conflict(
    db: Session,
    room_id: int,
    starts_at: datetime,
    ends_at: datetime,
    exclude_booking_id: Optional[int] = None,
) -> Optional[Booking]:
    q = (
        db.query(Booking)
        .filter(Booking.room_id == room_id)
        .filter(Booking.status != BookingStatus.CANCELLED)
        .filter(Booking.starts_at < ends_at)
        .filter(Booking.ends_at > starts_at)
    )
    if exclude_booking_id:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.first()


def assert_no_overlap(
    db: Session,
    room_id: int,
    starts_at: datetime,
    ends_at: datetime,
    exclude_booking_id: Optional[int] = None,
) -> None:
    if find_conflict(db, room_id, starts_at, ends_at, exclude_booking_id):
        raise SlotConflict("Room already booked in this period.", field="starts_at")


# ----------------------------- email ------------------------------
def _format_dt(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M")


def notify_booking_status(db: Session, booking: Booking) -> None:
    teacher = db.get(User, booking.teacher_id)
    room = db.get(Room, booking.room_id)
    if not teacher or not room:
        return

    status = booking.status.value
    html = f"""
    <h3>Room booking update</h3>
    <p><b>Status:</b> {status}</p>
    <p><b>Room:</b> {room.code}{f" ({room.name})" if room.name else ""}</p>
    <p><b>Title:</b> {booking.title}</p>
    <p><b>Time (UTC):</b> {_format_dt(booking.starts_at)} - {_format_dt(booking.ends_at)}</p>
    """
    email_svc.send(subject=f"[Booking {status}] {booking.title}", to=[teacher.email], html=html)


# ------------------------- engine operations -------------------------
def create_booking(
    db: Session,
    requester_id: int,
    requester_role: RoleLike,
    room_id: int,
    title: str,
    starts_at: datetime,
    ends_at: datetime,
    teacher_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Booking:
    role = _require_booking_role(requester_role)
    now = now or utcnow()
    starts_at, ends_at = to_naive_utc(starts_at), to_naive_utc(ends_at)

    _get_bookable_room(db, room_id)
    if role == UserRole.TEACHER:
        effective_teacher_id = requester_id
    else:
        effective_teacher_id = _get_teacher(db, teacher_id).id
    title = _clean_title(title)
    _check_window(starts_at, ends_at, now)

    try:
        _lock_room(db, room_id)
        assert_no_overlap(db, room_id, starts_at, ends_at)
        booking = Booking(
            room_id=room_id,
            teacher_id=effective_teacher_id,
            title=title,
            starts_at=starts_at,
            ends_at=ends_at,
            status=BookingStatus.PENDING,
            created_at=now,
        )
        db.add(booking)
        db.commit()
    except DomainError:
        db.rollback()
        raise
    db.refresh(booking)
    logger.info(
        "Booking %s created: room=%s teacher=%s %s..%s by user %s",
        booking.id, room_id, effective_teacher_id, starts_at, ends_at, requester_id,
    )
    return booking


def update_booking(
    db: Session,
    requester_id: int,
    requester_role: RoleLike,
    booking_id: int,
    room_id: int,
    title: str,
    starts_at: datetime,
    ends_at: datetime,
    teacher_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Booking:
    role = _require_booking_role(requester_role)
    now = now or utcnow()
    starts_at, ends_at = to_naive_utc(starts_at), to_naive_utc(ends_at)

    booking = db.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound("Booking not found")
    _require_owner_or_admin(role, requester_id, booking)
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelled("Cancelled bookings cannot be modified")

    _get_bookable_room(db, room_id)
    new_teacher_id = booking.teacher_id
    if role == UserRole.ADMIN:
        if teacher_id is not None and teacher_id != booking.teacher_id:
            new_teacher_id = _get_teacher(db, teacher_id).id
    title = _clean_title(title)
    _check_window(starts_at, ends_at, now)

    try:
        _lock_room(db, room_id)
        assert_no_overlap(db, room_id, starts_at, ends_at, exclude_booking_id=booking.id)
        booking.room_id = room_id
        booking.title = title
        booking.starts_at = starts_at
        booking.ends_at = ends_at
        booking.teacher_id = new_teacher_id
        db.commit()
    except DomainError:
        db.rollback()
        raise
    db.refresh(booking)
    logger.info("Booking %s updated by user %s", booking.id, requester_id)
    return booking


def cancel_booking(
    db: Session,
    requester_id: int,
    requester_role: RoleLike,
    booking_id: int,
) -> Booking:
    role = _require_booking_role(requester_role)

    booking = db.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound("Booking not found")
    _require_owner_or_admin(role, requester_id, booking)
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelled("Booking is already cancelled")

    booking.status = BookingStatus.CANCELLED
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s cancelled by user %s", booking.id, requester_id)
    notify_booking_status(db, booking)
    return booking


def set_booking_status(
    db: Session,
    requester_id: int,
    requester_role: RoleLike,
    booking_id: int,
    status: BookingStatus,
) -> Booking:
    """Admin approval workflow; Cancelled stays reachable from every other state."""
    if _role(requester_role) != UserRole.ADMIN:
        raise AuthorizationDenied("Administrator required")

    booking = db.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound("Booking not found")

    current = booking.status
    if current == BookingStatus.CANCELLED:
        raise AlreadyCancelled("Booking is already cancelled")
    if status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Cannot change status from {current.value} to {status.value}", field="status"
        )

    booking.status = status
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s: %s -> %s by user %s", booking.id, current.value, status.value, requester_id)
    notify_booking_status(db, booking)
    return booking


def list_available_rooms(db: Session, date_from: datetime, date_to: datetime) -> List[Room]:
    """Active rooms with no non-cancelled booking overlapping [date_from, date_to)."""
    date_from, date_to = to_naive_utc(date_from), to_naive_utc(date_to)
    if date_from >= date_to:
        raise ValidationFailed("from must be earlier than to", field="from")

    busy_room_ids = (
        select(Booking.room_id)
        .where(Booking.status != BookingStatus.CANCELLED)
        .where(Booking.starts_at < date_to)
        .where(Booking.ends_at > date_from)
        .distinct()
    )
    return (
        db.query(Room)
        .filter(Room.is_active.is_(True))
        .filter(Room.id.not_in(busy_room_ids))
        .order_by(Room.id.asc())
        .all()
    )


# ----------------------------- queries ------------------------------
def get_booking(db: Session, booking_id: int) -> Booking:
    booking = (
        db.query(Booking)
        .options(joinedload(Booking.room))
        .filter(Booking.id == booking_id)
        .first()
    )
    if not booking:
        raise BookingNotFound("Booking not found")
    return booking


def list_bookings(
    db: Session,
    room_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    status: Optional[BookingStatus] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Booking]:
    q = db.query(Booking).options(joinedload(Booking.room))
    if room_id:
        q = q.filter(Booking.room_id == room_id)
    if teacher_id:
        q = q.filter(Booking.teacher_id == teacher_id)
    if status:
        q = q.filter(Booking.status == status)
    if date_from:
        q = q.filter(Booking.ends_at > to_naive_utc(date_from))
    if date_to:
        q = q.filter(Booking.starts_at < to_naive_utc(date_to))
    return q.order_by(Booking.starts_at.desc()).offset(skip).limit(limit).all()
