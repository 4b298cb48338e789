# modules/security/models.py
from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database.base import Base


class TokenPurpose(str, Enum):
    EMAIL_CONFIRMATION = "EmailConfirmation"
    PASSWORD_RESET = "PasswordReset"


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")


class UserToken(Base):
    """Single-use token (email confirmation / password reset), deleted on redemption."""
    __tablename__ = "user_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), index=True, nullable=False)
    purpose = Column(String(100), nullable=False)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="user_tokens")
