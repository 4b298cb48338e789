# modules/security/bootstrap.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from config.settings import settings
from database.connection import SessionLocal
from modules.security.passwords import hash_password
from modules.users.models import User, UserRole
from modules.users.services import get_user_by_email, normalize_email

logger = logging.getLogger(__name__)


def _seed_admin(db: Session, email: str, password: str) -> Optional[User]:
    if db.query(User).filter(User.role == UserRole.ADMIN.value).first():
        return None
    if get_user_by_email(db, email):
        logger.warning("Default admin %s not seeded: email belongs to a non-admin account", email)
        return None

    admin = User(
        email=normalize_email(email),
        password_hash=hash_password(password),
        full_name="Administrator",
        role=UserRole.ADMIN.value,
        email_confirmed=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Seeded default admin %s", admin.email)
    return admin


def ensure_default_admin(db: Optional[Session] = None) -> Optional[User]:
    """
    Create the default administrator if no Admin exists yet.
    - email/password come from DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD
    - an empty password disables seeding
    """
    password = settings.DEFAULT_ADMIN_PASSWORD
    if not password:
        logger.info("DEFAULT_ADMIN_PASSWORD not set; skipping admin seeding")
        return None

    if db is not None:
        return _seed_admin(db, settings.DEFAULT_ADMIN_EMAIL, password)
    with SessionLocal() as session:
        return _seed_admin(session, settings.DEFAULT_ADMIN_EMAIL, password)
