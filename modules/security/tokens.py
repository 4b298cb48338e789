# modules/security/tokens.py
"""
Token Service.

Access credentials are HS256 JWTs signed with the shared ``SECRET_KEY``; they
are verified without any store lookup. Refresh and single-use tokens are opaque
random strings persisted by the auth services.
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from config.settings import settings as default_settings
from modules.common.errors import Unauthenticated


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    role: str
    jti: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    def __init__(self, settings=default_settings):
        self.s = settings

    def issue(self, user_id: int, email: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=self.s.ACCESS_TOKEN_EXPIRE_HOURS)).timestamp()),
            "iss": self.s.JWT_ISSUER,
            "aud": self.s.JWT_AUDIENCE,
        }
        return jwt.encode(payload, self.s.SECRET_KEY, algorithm=self.s.ALGORITHM)

    def validate(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.s.SECRET_KEY,
                algorithms=[self.s.ALGORITHM],
                audience=self.s.JWT_AUDIENCE,
                issuer=self.s.JWT_ISSUER,
                options={"require": ["sub", "exp", "iat", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Access token expired")
        except jwt.InvalidTokenError:
            raise Unauthenticated("Invalid access token")

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            raise Unauthenticated("Invalid access token")

        return TokenClaims(
            user_id=user_id,
            email=payload.get("email") or "",
            role=payload.get("role") or "",
            jti=payload["jti"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    @staticmethod
    def new_opaque_token() -> str:
        return secrets.token_urlsafe(48)


token_service = TokenService()
