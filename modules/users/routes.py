# modules/users/routes.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database.connection import get_db
from modules.common.errors import NotFound
from modules.security.deps import require_admin
from modules.users import schemas, services

api_router = APIRouter(
    prefix="/api/v1/users",
    tags=["Users API"],
    dependencies=[Depends(require_admin)],
)


@api_router.get("/", response_model=List[schemas.UserOut])
def read_users_route(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return services.get_users(db, skip=skip, limit=limit)


@api_router.get("/{user_id}", response_model=schemas.UserOut)
def read_user_route(user_id: int, db: Session = Depends(get_db)):
    user = services.get_user(db, user_id)
    if not user:
        raise NotFound("User not found")
    return user


@api_router.post("/", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED)
def create_user_route(payload: schemas.UserCreate, db: Session = Depends(get_db)):
    return services.create_user(db, payload)


@api_router.put("/{user_id}", response_model=schemas.UserOut)
def update_user_route(user_id: int, payload: schemas.UserUpdate, db: Session = Depends(get_db)):
    return services.update_user(db, user_id, payload)


@api_router.delete("/{user_id}")
def delete_user_route(user_id: int, db: Session = Depends(get_db)):
    return services.delete_user(db, user_id)
