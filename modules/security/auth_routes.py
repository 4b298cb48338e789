# modules/security/auth_routes.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.connection import get_db
from modules.security import schemas, services
from modules.security.deps import get_current_user
from modules.users.models import User
from modules.users.schemas import UserOut

router = APIRouter(prefix="/api/v1/auth", tags=["Auth API"])


@router.post("/register", response_model=schemas.TokenResponse)
def register(payload: schemas.RegisterRequest, db: Session = Depends(get_db)):
    return services.register(db, payload)


@router.post("/login", response_model=schemas.TokenResponse)
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    return services.login(db, payload.email, payload.password)


@router.post("/refresh", response_model=schemas.TokenResponse)
def refresh(payload: schemas.RefreshRequest, db: Session = Depends(get_db)):
    return services.refresh(db, payload.refresh_token)


@router.post("/logout", response_model=schemas.MessageResponse)
def logout(payload: schemas.RefreshRequest, db: Session = Depends(get_db)):
    services.logout(db, payload.refresh_token)
    return {"message": "Logged out"}


@router.post("/confirm-email", response_model=schemas.MessageResponse)
def confirm_email(payload: schemas.ConfirmEmailRequest, db: Session = Depends(get_db)):
    services.confirm_email(db, payload.token)
    return {"message": "Email confirmed"}


@router.post("/forgot-password", response_model=schemas.MessageResponse)
def forgot_password(payload: schemas.ForgotPasswordRequest, db: Session = Depends(get_db)):
    services.request_password_reset(db, payload.email)
    return {"message": "If the account exists, a reset link has been sent"}


@router.post("/reset-password", response_model=schemas.MessageResponse)
def reset_password(payload: schemas.ResetPasswordRequest, db: Session = Depends(get_db)):
    services.reset_password(
        db,
        email=payload.email,
        token=payload.token,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    return {"message": "Password has been reset"}


@router.post("/change-password", response_model=schemas.MessageResponse)
def change_password(
    payload: schemas.ChangePasswordRequest,
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    services.change_password(
        db,
        requester_id=me.id,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    return {"message": "Password changed successfully"}


@router.get("/me", response_model=UserOut)
def me(db: Session = Depends(get_db), me=Depends(get_current_user)):
    return db.get(User, me.id)


__all__ = ["router"]
