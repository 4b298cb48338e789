# modules/security/services.py
"""
Auth engine: registration, login, refresh-token rotation, email confirmation
and password reset/change.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.settings import email_settings, settings
from modules.common.email_service import EmailService
from modules.common.errors import Conflict, Unauthenticated, ValidationFailed
from modules.common.timeutils import utcnow
from modules.organization.models import Department
from modules.users.models import User, UserRole
from modules.users.services import email_taken, get_user_by_email, normalize_email

from . import schemas
from .models import RefreshToken, TokenPurpose, UserToken
from .passwords import (
    burn_verification,
    hash_password,
    is_bcrypt_hash,
    validate_new_password,
    verify_password,
)
from .tokens import TokenService, token_service

logger = logging.getLogger(__name__)

email_svc = EmailService(email_settings)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TOKEN = "Invalid or expired token"


# ----------------------------- helpers -----------------------------
def _new_refresh_token(db: Session, user_id: int, now: datetime, tokens: TokenService) -> RefreshToken:
    rt = RefreshToken(
        user_id=user_id,
        token=tokens.new_opaque_token(),
        expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        revoked=False,
    )
    db.add(rt)
    return rt


def _new_user_token(
    db: Session,
    user_id: int,
    purpose: TokenPurpose,
    expires_at: datetime,
    tokens: TokenService,
) -> UserToken:
    ut = UserToken(
        user_id=user_id,
        token=tokens.new_opaque_token(),
        purpose=purpose.value,
        expires_at=expires_at,
    )
    db.add(ut)
    return ut


def _consume_user_token(db: Session, ut: UserToken) -> None:
    """Delete a single-use token; only one of several concurrent redemptions gets the row."""
    purpose, user_id = ut.purpose, ut.user_id
    res = db.execute(
        delete(UserToken)
        .where(UserToken.id == ut.id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        logger.warning("Single-use %s token for user %s was already redeemed", purpose, user_id)
        raise ValidationFailed(INVALID_TOKEN, field="token")


def _token_response(user: User, refresh: RefreshToken, tokens: TokenService) -> schemas.TokenResponse:
    return schemas.TokenResponse(
        access_token=tokens.issue(user.id, user.email, user.role),
        refresh_token=refresh.token,
    )


def _link(path: str, token: str, email: Optional[str] = None) -> str:
    url = f"{settings.FRONTEND_URL.rstrip('/')}{path}?token={quote(token)}"
    if email:
        url += f"&email={quote(email)}"
    return url


def send_confirmation_email(user: User, token: str) -> bool:
    link = _link("/confirm-email", token)
    html = f"""
    <h3>Confirm your email</h3>
    <p>Hello {user.full_name},</p>
    <p>Please confirm your account: <a href="{link}">{link}</a></p>
    <p>This link expires in {settings.EMAIL_CONFIRMATION_EXPIRE_DAYS} days.</p>
    """
    return email_svc.send(subject="Confirm your email", to=[user.email], html=html, text=link)


def send_password_reset_email(user: User, token: str) -> bool:
    link = _link("/reset-password", token, user.email)
    html = f"""
    <h3>Password reset</h3>
    <p>Hello {user.full_name},</p>
    <p>Use this link to choose a new password: <a href="{link}">{link}</a></p>
    <p>This link expires in {settings.PASSWORD_RESET_EXPIRE_HOURS} hour(s). Ignore this email if you did not ask for it.</p>
    """
    return email_svc.send(subject="Reset your password", to=[user.email], html=html, text=link)


# ----------------------------- operations -----------------------------
def register(
    db: Session,
    payload: schemas.RegisterRequest,
    now: Optional[datetime] = None,
    tokens: TokenService = token_service,
) -> schemas.TokenResponse:
    now = now or utcnow()
    validate_new_password(payload.password, payload.confirm_password)

    if email_taken(db, payload.email):
        raise Conflict("Email already in use", field="email")

    # unknown departments are dropped, never an error
    department_id = None
    if payload.department_id is not None and db.get(Department, payload.department_id):
        department_id = payload.department_id

    user = User(
        email=normalize_email(payload.email),
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        role=UserRole(payload.role).value,
        email_confirmed=False,
        department_id=department_id,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already in use", field="email")

    confirmation = _new_user_token(
        db, user.id, TokenPurpose.EMAIL_CONFIRMATION,
        now + timedelta(days=settings.EMAIL_CONFIRMATION_EXPIRE_DAYS), tokens,
    )
    refresh = _new_refresh_token(db, user.id, now, tokens)
    db.commit()
    db.refresh(user)

    logger.info("User %s registered with role %s", user.id, user.role)
    send_confirmation_email(user, confirmation.token)
    return _token_response(user, refresh, tokens)


def login(
    db: Session,
    email: str,
    password: str,
    now: Optional[datetime] = None,
    tokens: TokenService = token_service,
) -> schemas.TokenResponse:
    now = now or utcnow()
    user = get_user_by_email(db, email)
    if not user:
        burn_verification(password)
        logger.warning("Login failed: unknown email")
        raise Unauthenticated(INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash):
        logger.warning("Login failed: bad password for user %s", user.id)
        raise Unauthenticated(INVALID_CREDENTIALS)

    # upgrade legacy bcrypt hashes to the current scheme
    if is_bcrypt_hash(user.password_hash):
        user.password_hash = hash_password(password)

    refresh = _new_refresh_token(db, user.id, now, tokens)
    db.commit()
    logger.info("User %s logged in", user.id)
    return _token_response(user, refresh, tokens)


def refresh(
    db: Session,
    refresh_token: str,
    now: Optional[datetime] = None,
    tokens: TokenService = token_service,
) -> schemas.TokenResponse:
    """
    One-time-use rotation. The revoke is a compare-and-set on ``revoked`` so two
    concurrent refreshes of the same token cannot both succeed.
    """
    now = now or utcnow()
    rt = db.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
    if not rt or rt.revoked or rt.expires_at <= now:
        raise Unauthenticated("Invalid refresh token")

    res = db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == rt.id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        logger.warning("Refresh token replay detected for user %s", rt.user_id)
        raise Unauthenticated("Invalid refresh token")

    user = db.get(User, rt.user_id)
    if not user:
        db.rollback()
        raise Unauthenticated("Invalid refresh token")

    new_rt = _new_refresh_token(db, user.id, now, tokens)
    db.commit()
    return _token_response(user, new_rt, tokens)


def logout(db: Session, refresh_token: str) -> None:
    """Revoke the presented refresh token; unknown tokens are ignored."""
    db.execute(
        update(RefreshToken)
        .where(RefreshToken.token == refresh_token)
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def confirm_email(db: Session, token: str, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    ut = (
        db.query(UserToken)
        .filter(UserToken.token == token, UserToken.purpose == TokenPurpose.EMAIL_CONFIRMATION.value)
        .first()
    )
    if not ut or ut.expires_at <= now:
        raise ValidationFailed(INVALID_TOKEN, field="token")

    user_id = ut.user_id
    _consume_user_token(db, ut)
    user = db.get(User, user_id)
    user.email_confirmed = True
    db.commit()
    logger.info("User %s confirmed email", user.id)


def request_password_reset(
    db: Session,
    email: str,
    now: Optional[datetime] = None,
    tokens: TokenService = token_service,
) -> None:
    """Issues and emails a reset token when the account exists; callers always get the same answer."""
    now = now or utcnow()
    user = get_user_by_email(db, email)
    if not user:
        logger.info("Password reset requested for unknown email")
        return
    ut = _new_user_token(
        db, user.id, TokenPurpose.PASSWORD_RESET,
        now + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS), tokens,
    )
    db.commit()
    send_password_reset_email(user, ut.token)


def reset_password(
    db: Session,
    email: str,
    token: str,
    new_password: str,
    confirm_password: str,
    now: Optional[datetime] = None,
) -> None:
    now = now or utcnow()
    user = get_user_by_email(db, email)
    if not user:
        raise ValidationFailed(INVALID_TOKEN, field="token")

    ut = (
        db.query(UserToken)
        .filter(
            UserToken.user_id == user.id,
            UserToken.purpose == TokenPurpose.PASSWORD_RESET.value,
            UserToken.token == token,
        )
        .first()
    )
    if not ut or ut.expires_at <= now:
        raise ValidationFailed(INVALID_TOKEN, field="token")

    validate_new_password(new_password, confirm_password, field="new_password")

    _consume_user_token(db, ut)
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("User %s reset password", user.id)


def change_password(
    db: Session,
    requester_id: int,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> None:
    user = db.get(User, requester_id)
    if not user:
        raise Unauthenticated("LOGIN_REQUIRED")
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailed("Current password is incorrect", field="current_password")

    validate_new_password(new_password, confirm_password, field="new_password")

    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("User %s changed password", user.id)
