# modules/booking/models.py
from __future__ import annotations

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from database.base import Base
from modules.common.timeutils import utcnow


class BookingStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


# Cancelled is terminal; every other state can still converge to it
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.APPROVED, BookingStatus.REJECTED, BookingStatus.CANCELLED},
    BookingStatus.APPROVED: {BookingStatus.CANCELLED},
    BookingStatus.REJECTED: {BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
}


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)

    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)

    status = Column(
        SAEnum(BookingStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    room = relationship("Room", back_populates="bookings")
    teacher = relationship("User", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_booking_time_order"),
        Index("ix_bookings_room_window", "room_id", "starts_at", "ends_at"),
    )
