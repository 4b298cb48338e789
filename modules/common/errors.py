# modules/common/errors.py
"""
Domain error taxonomy.

Services raise these; the HTTP layer renders them as
``{"detail": ..., "code": ..., "field": ...}`` with ``status_code``.
"""
from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    status_code = 400
    code = "DomainError"
    headers: Optional[dict] = None

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict:
        body = {"detail": self.detail, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


# ---------- kinds ----------
class ValidationFailed(DomainError):
    status_code = 400
    code = "ValidationFailed"


class Unauthenticated(DomainError):
    status_code = 401
    code = "Unauthenticated"
    headers = {"WWW-Authenticate": "Bearer"}


class AuthorizationDenied(DomainError):
    status_code = 403
    code = "AuthorizationDenied"


class NotFound(DomainError):
    status_code = 404
    code = "NotFound"


class Conflict(DomainError):
    status_code = 409
    code = "Conflict"


class AlreadyInTerminalState(DomainError):
    status_code = 409
    code = "AlreadyInTerminalState"


# ---------- booking failures ----------
class RoomNotFound(NotFound):
    code = "RoomNotFound"


class BookingNotFound(NotFound):
    code = "BookingNotFound"


class TeacherNotFound(NotFound):
    code = "TeacherNotFound"


class RoomInactive(ValidationFailed):
    code = "RoomInactive"


class InvalidTitle(ValidationFailed):
    code = "InvalidTitle"


class PastStartTime(ValidationFailed):
    code = "PastStartTime"


class InvalidTimeOrder(ValidationFailed):
    code = "InvalidTimeOrder"


class InvalidStatusTransition(ValidationFailed):
    code = "InvalidStatusTransition"


class SlotConflict(Conflict):
    code = "SlotConflict"


class AlreadyCancelled(AlreadyInTerminalState):
    code = "AlreadyCancelled"
