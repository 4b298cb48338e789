# modules/users/models.py
from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database.base import Base
from modules.common.timeutils import utcnow


class UserRole(str, Enum):
    ADMIN = "Admin"
    TEACHER = "Teacher"
    STAFF = "Staff"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # always stored lower-cased, see modules.users.services.normalize_email
    email = Column(String(200), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.TEACHER.value)
    email_confirmed = Column(Boolean, default=False, nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    department = relationship("Department", back_populates="users")
    bookings = relationship("Booking", back_populates="teacher")
    refresh_tokens = relationship("RefreshToken", back_populates="user")
    user_tokens = relationship("UserToken", back_populates="user")

