# modules/organization/services.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modules.booking.models import Booking
from modules.common.errors import Conflict, NotFound
from modules.users.models import User

from . import models, schemas

logger = logging.getLogger(__name__)


def _commit_or_conflict(db: Session, obj, message: str, field: Optional[str] = None):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(message, field=field)
    db.refresh(obj)
    return obj


# -------------------------------------------------
# Department Services
# -------------------------------------------------

def get_department(db: Session, department_id: int) -> Optional[models.Department]:
    return db.get(models.Department, department_id)


def get_department_by_name(db: Session, name: str) -> Optional[models.Department]:
    return (
        db.query(models.Department)
        .filter(func.lower(models.Department.name) == name.strip().lower())
        .first()
    )


def get_departments(db: Session):
    rows = (
        db.query(models.Department, func.count(User.id))
        .outerjoin(User, User.department_id == models.Department.id)
        .group_by(models.Department.id)
        .order_by(models.Department.name.asc())
        .all()
    )
    return [
        {"id": d.id, "name": d.name, "created_at": d.created_at, "user_count": count}
        for d, count in rows
    ]


def create_department(db: Session, payload: schemas.DepartmentCreate) -> models.Department:
    if get_department_by_name(db, payload.name):
        raise Conflict("Department name already exists", field="name")
    dept = models.Department(name=payload.name)
    db.add(dept)
    return _commit_or_conflict(db, dept, "Department name already exists", field="name")


def update_department(db: Session, department_id: int, payload: schemas.DepartmentUpdate) -> models.Department:
    dept = get_department(db, department_id)
    if not dept:
        raise NotFound("Department not found")
    existing = get_department_by_name(db, payload.name)
    if existing and existing.id != dept.id:
        raise Conflict("Department name already exists", field="name")
    dept.name = payload.name
    return _commit_or_conflict(db, dept, "Department name already exists", field="name")


def delete_department(db: Session, department_id: int) -> dict:
    """Members are detached (department_id -> NULL) before the department goes."""
    dept = get_department(db, department_id)
    if not dept:
        raise NotFound("Department not found")
    detached = (
        db.query(User)
        .filter(User.department_id == dept.id)
        .update({User.department_id: None}, synchronize_session=False)
    )
    db.delete(dept)
    db.commit()
    logger.info("Department %s deleted, %s user(s) detached", department_id, detached)
    return {"message": "Department deleted successfully", "detached_users": detached}


# -------------------------------------------------
# Building Services
# -------------------------------------------------

def get_building(db: Session, building_id: int) -> Optional[models.Building]:
    return db.get(models.Building, building_id)


def get_building_by_name(db: Session, name: str) -> Optional[models.Building]:
    return (
        db.query(models.Building)
        .filter(func.lower(models.Building.name) == name.strip().lower())
        .first()
    )


def get_buildings(db: Session):
    rows = (
        db.query(models.Building, func.count(models.Room.id))
        .outerjoin(models.Room, models.Room.building_id == models.Building.id)
        .group_by(models.Building.id)
        .order_by(models.Building.name.asc())
        .all()
    )
    return [
        {"id": b.id, "name": b.name, "created_at": b.created_at, "room_count": count}
        for b, count in rows
    ]


def get_building_detail(db: Session, building_id: int) -> dict:
    building = get_building(db, building_id)
    if not building:
        raise NotFound("Building not found")
    return {
        "id": building.id,
        "name": building.name,
        "created_at": building.created_at,
        "room_count": len(building.rooms),
        "rooms": building.rooms,
    }


def create_building(db: Session, payload: schemas.BuildingCreate) -> models.Building:
    if get_building_by_name(db, payload.name):
        raise Conflict("Building name already exists", field="name")
    building = models.Building(name=payload.name)
    db.add(building)
    return _commit_or_conflict(db, building, "Building name already exists", field="name")


def update_building(db: Session, building_id: int, payload: schemas.BuildingUpdate) -> models.Building:
    building = get_building(db, building_id)
    if not building:
        raise NotFound("Building not found")
    existing = get_building_by_name(db, payload.name)
    if existing and existing.id != building.id:
        raise Conflict("Building name already exists", field="name")
    building.name = payload.name
    return _commit_or_conflict(db, building, "Building name already exists", field="name")


def delete_building(db: Session, building_id: int) -> dict:
    building = get_building(db, building_id)
    if not building:
        raise NotFound("Building not found")
    room_count = db.query(models.Room.id).filter(models.Room.building_id == building.id).count()
    if room_count:
        raise Conflict(f"Cannot delete building with existing rooms ({room_count} room(s))")
    db.delete(building)
    db.commit()
    return {"message": "Building deleted successfully"}


# -------------------------------------------------
# Room Services
# -------------------------------------------------

def get_room(db: Session, room_id: int) -> Optional[models.Room]:
    return db.get(models.Room, room_id)


def get_rooms(db: Session, building_id: Optional[int] = None, active_only: bool = False):
    q = db.query(models.Room)
    if building_id:
        q = q.filter(models.Room.building_id == building_id)
    if active_only:
        q = q.filter(models.Room.is_active.is_(True))
    return q.order_by(models.Room.building_id.asc(), models.Room.code.asc()).all()


def _room_code_taken(db: Session, building_id: int, code: str, exclude_room_id: Optional[int] = None) -> bool:
    q = db.query(models.Room.id).filter(
        models.Room.building_id == building_id,
        models.Room.code == code,
    )
    if exclude_room_id:
        q = q.filter(models.Room.id != exclude_room_id)
    return q.first() is not None


def create_room(db: Session, payload: schemas.RoomCreate) -> models.Room:
    if not get_building(db, payload.building_id):
        raise NotFound("Building not found", field="building_id")
    if _room_code_taken(db, payload.building_id, payload.code):
        raise Conflict("Room code already exists in building", field="code")
    room = models.Room(
        building_id=payload.building_id,
        code=payload.code,
        name=payload.name,
        capacity=payload.capacity,
    )
    db.add(room)
    return _commit_or_conflict(db, room, "Room code already exists in building", field="code")


def update_room(db: Session, room_id: int, payload: schemas.RoomUpdate) -> models.Room:
    room = get_room(db, room_id)
    if not room:
        raise NotFound("Room not found")
    data = payload.model_dump(exclude_unset=True)
    if data.get("code") and _room_code_taken(db, room.building_id, data["code"], exclude_room_id=room.id):
        raise Conflict("Room code already exists in building", field="code")
    for key, value in data.items():
        if value is None and key in ("code", "capacity", "is_active"):
            continue
        setattr(room, key, value)
    return _commit_or_conflict(db, room, "Room code already exists in building", field="code")


def set_room_active(db: Session, room_id: int, active: bool) -> models.Room:
    room = get_room(db, room_id)
    if not room:
        raise NotFound("Room not found")
    room.is_active = active
    db.commit()
    db.refresh(room)
    logger.info("Room %s active=%s", room.id, active)
    return room


def delete_room(db: Session, room_id: int) -> dict:
    room = get_room(db, room_id)
    if not room:
        raise NotFound("Room not found")
    # cancelled bookings still reference the room, so they block deletion too
    if db.query(Booking.id).filter(Booking.room_id == room.id).first() is not None:
        raise Conflict("Cannot delete room with existing bookings")
    db.delete(room)
    db.commit()
    return {"message": "Room deleted successfully"}
