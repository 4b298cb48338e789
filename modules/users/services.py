# modules/users/services.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modules.booking.models import Booking
from modules.common.errors import Conflict, NotFound, ValidationFailed
from modules.organization.models import Department
from modules.security.models import RefreshToken, UserToken
from modules.security.passwords import hash_password, validate_new_password

from . import models, schemas

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Helpers
# -------------------------------------------------

def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(func.lower(models.User.email) == normalize_email(email))
        .first()
    )


def email_taken(db: Session, email: str, exclude_user_id: Optional[int] = None) -> bool:
    q = db.query(models.User.id).filter(func.lower(models.User.email) == normalize_email(email))
    if exclude_user_id:
        q = q.filter(models.User.id != exclude_user_id)
    return q.first() is not None


def _require_department(db: Session, department_id: Optional[int]) -> None:
    if department_id is not None and not db.get(Department, department_id):
        raise NotFound("Department not found", field="department_id")


def _commit_user(db: Session, user: models.User) -> models.User:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already in use", field="email")
    db.refresh(user)
    return user


# -------------------------------------------------
# User Services (admin surface)
# -------------------------------------------------

def get_users(db: Session, skip: int = 0, limit: int = 100):
    return (
        db.query(models.User)
        .order_by(models.User.id.asc())
        .offset(skip).limit(limit).all()
    )


def create_user(db: Session, payload: schemas.UserCreate) -> models.User:
    validate_new_password(payload.password, payload.confirm_password)

    if payload.role == models.UserRole.TEACHER and payload.department_id is None:
        raise ValidationFailed("DepartmentId is required for Teacher", field="department_id")
    _require_department(db, payload.department_id)

    if email_taken(db, payload.email):
        raise Conflict("Email already in use", field="email")

    user = models.User(
        email=normalize_email(payload.email),
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        role=payload.role.value,
        department_id=payload.department_id,
    )
    db.add(user)
    user = _commit_user(db, user)
    logger.info("User %s created with role %s", user.id, user.role)
    return user


def update_user(db: Session, user_id: int, payload: schemas.UserUpdate) -> models.User:
    user = get_user(db, user_id)
    if not user:
        raise NotFound("User not found")

    data = payload.model_dump(exclude_unset=True)

    if data.get("email") is not None:
        if email_taken(db, data["email"], exclude_user_id=user.id):
            raise Conflict("Email already in use", field="email")
        user.email = normalize_email(data["email"])
    if data.get("full_name") is not None:
        user.full_name = data["full_name"]
    if data.get("role") is not None:
        user.role = data["role"].value
    if "department_id" in data:
        _require_department(db, data["department_id"])
        user.department_id = data["department_id"]

    return _commit_user(db, user)


def delete_user(db: Session, user_id: int) -> dict:
    user = get_user(db, user_id)
    if not user:
        raise NotFound("User not found")

    # bookings keep their owner; a user with bookings cannot be removed
    has_bookings = db.query(Booking.id).filter(Booking.teacher_id == user.id).first() is not None
    if has_bookings:
        raise Conflict("Cannot delete user with existing bookings")

    db.query(RefreshToken).filter(RefreshToken.user_id == user.id).delete(synchronize_session=False)
    db.query(UserToken).filter(UserToken.user_id == user.id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("User %s deleted", user_id)
    return {"message": "User deleted successfully"}
