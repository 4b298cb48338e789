from __future__ import annotations

from typing import Optional

# werkzeug PBKDF2 is the standard; bcrypt only verifies hashes imported from the previous system
import bcrypt
from werkzeug.security import check_password_hash, generate_password_hash

from config.settings import settings
from modules.common.errors import ValidationFailed

MIN_PASSWORD_LENGTH = 8
MIN_CHARACTER_CLASSES = 3

POLICY_MESSAGE = (
    "Password must be at least 8 characters and include at least 3 of: "
    "uppercase, lowercase, digit, symbol"
)

_dummy_hash: Optional[str] = None


def is_bcrypt_hash(h: Optional[str]) -> bool:
    return isinstance(h, str) and h.startswith(("$2a$", "$2b$", "$2y$"))


def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256 via werkzeug."""
    return generate_password_hash(password or "", method=settings.PASSWORD_HASH_METHOD, salt_length=16)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Constant-time verification provided by the hashing primitive.
    - bcrypt ($2a$/$2b$/$2y$) for legacy rows
    - werkzeug PBKDF2 otherwise
    """
    if not password_hash:
        return False

    if is_bcrypt_hash(password_hash):
        try:
            return bcrypt.checkpw((password or "").encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    try:
        return check_password_hash(password_hash, password or "")
    except ValueError:
        return False


def burn_verification(password: str) -> None:
    """Run a verification against a throwaway hash so unknown accounts cost the same time."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("not-a-real-password")
    check_password_hash(_dummy_hash, password or "")


def character_classes(password: str) -> int:
    checks = (
        any(c.islower() for c in password),
        any(c.isupper() for c in password),
        any(c.isdigit() for c in password),
        any(not c.isalnum() for c in password),
    )
    return sum(checks)


def is_strong_password(password: Optional[str]) -> bool:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False
    return character_classes(password) >= MIN_CHARACTER_CLASSES


def validate_new_password(
    password: Optional[str],
    confirm: Optional[str],
    field: str = "password",
    confirm_field: str = "confirm_password",
) -> None:
    if password != confirm:
        raise ValidationFailed("Passwords do not match", field=confirm_field)
    if not is_strong_password(password):
        raise ValidationFailed(POLICY_MESSAGE, field=field)
