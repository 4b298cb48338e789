# modules/security/deps.py
from __future__ import annotations

from types import SimpleNamespace
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from database.connection import get_db
from modules.common.errors import AuthorizationDenied, Unauthenticated
from modules.security.tokens import token_service
from modules.users.models import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


# ------------------------------------------------------------
# Current user dependencies
# ------------------------------------------------------------
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
):
    """
    Validate the bearer access token and return SimpleNamespace(id, email, role).
    Missing/invalid/expired token or a deleted account -> 401.
    """
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise Unauthenticated("LOGIN_REQUIRED")

    claims = token_service.validate(credentials.credentials)

    user = db.get(User, claims.user_id)
    if not user:
        raise Unauthenticated("LOGIN_REQUIRED")

    # role is read from the store so a demotion takes effect before the token expires
    return SimpleNamespace(id=user.id, email=user.email, role=user.role)


def require_roles(*roles: UserRole) -> Callable:
    """
    FastAPI dependency:
      @router.post(..., dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """
    allowed = {r.value for r in roles}

    def _dep(me=Depends(get_current_user)):
        if me.role not in allowed:
            raise AuthorizationDenied("PERMISSION_DENIED")
        return me
    return _dep


require_admin = require_roles(UserRole.ADMIN)
