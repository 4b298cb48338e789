# modules/organization/routes.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database.connection import get_db
from modules.booking import services as booking_services
from modules.common.errors import NotFound
from modules.organization import schemas, services
from modules.security.deps import get_current_user, require_admin

api_router = APIRouter(prefix="/api/v1", dependencies=[Depends(get_current_user)])


# ---------- API : Departments ----------
@api_router.get("/departments/", response_model=List[schemas.DepartmentOut], tags=["Departments API"])
def read_departments_route(db: Session = Depends(get_db)):
    return services.get_departments(db)


@api_router.get("/departments/{department_id}", response_model=schemas.DepartmentOut, tags=["Departments API"])
def read_department_route(department_id: int, db: Session = Depends(get_db)):
    obj = services.get_department(db, department_id)
    if not obj:
        raise NotFound("Department not found")
    return {"id": obj.id, "name": obj.name, "created_at": obj.created_at, "user_count": len(obj.users)}


@api_router.post(
    "/departments/",
    response_model=schemas.DepartmentOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
    tags=["Departments API"],
)
def create_department_route(payload: schemas.DepartmentCreate, db: Session = Depends(get_db)):
    return services.create_department(db, payload)


@api_router.put(
    "/departments/{department_id}",
    response_model=schemas.DepartmentOut,
    dependencies=[Depends(require_admin)],
    tags=["Departments API"],
)
def update_department_route(department_id: int, payload: schemas.DepartmentUpdate, db: Session = Depends(get_db)):
    return services.update_department(db, department_id, payload)


@api_router.delete("/departments/{department_id}", dependencies=[Depends(require_admin)], tags=["Departments API"])
def delete_department_route(department_id: int, db: Session = Depends(get_db)):
    return services.delete_department(db, department_id)


# ---------- API : Buildings ----------
@api_router.get("/buildings/", response_model=List[schemas.BuildingOut], tags=["Buildings API"])
def read_buildings_route(db: Session = Depends(get_db)):
    return services.get_buildings(db)


@api_router.get("/buildings/{building_id}", response_model=schemas.BuildingDetail, tags=["Buildings API"])
def read_building_route(building_id: int, db: Session = Depends(get_db)):
    return services.get_building_detail(db, building_id)


@api_router.post(
    "/buildings/",
    response_model=schemas.BuildingOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
    tags=["Buildings API"],
)
def create_building_route(payload: schemas.BuildingCreate, db: Session = Depends(get_db)):
    return services.create_building(db, payload)


@api_router.put(
    "/buildings/{building_id}",
    response_model=schemas.BuildingOut,
    dependencies=[Depends(require_admin)],
    tags=["Buildings API"],
)
def update_building_route(building_id: int, payload: schemas.BuildingUpdate, db: Session = Depends(get_db)):
    return services.update_building(db, building_id, payload)


@api_router.delete("/buildings/{building_id}", dependencies=[Depends(require_admin)], tags=["Buildings API"])
def delete_building_route(building_id: int, db: Session = Depends(get_db)):
    return services.delete_building(db, building_id)


# ---------- API : Rooms ----------
@api_router.get("/rooms/", response_model=List[schemas.RoomOut], tags=["Rooms API"])
def read_rooms_route(
    building_id: Optional[int] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    return services.get_rooms(db, building_id=building_id, active_only=active_only)


# declared before /rooms/{room_id} so "available" is not parsed as an id
@api_router.get("/rooms/available", response_model=List[schemas.RoomOut], tags=["Rooms API"])
def available_rooms_route(
    date_from: datetime = Query(..., alias="from"),
    date_to: datetime = Query(..., alias="to"),
    db: Session = Depends(get_db),
):
    return booking_services.list_available_rooms(db, date_from, date_to)


@api_router.get("/rooms/{room_id}", response_model=schemas.RoomOut, tags=["Rooms API"])
def read_room_route(room_id: int, db: Session = Depends(get_db)):
    room = services.get_room(db, room_id)
    if not room:
        raise NotFound("Room not found")
    return room


@api_router.post(
    "/rooms/",
    response_model=schemas.RoomOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
    tags=["Rooms API"],
)
def create_room_route(payload: schemas.RoomCreate, db: Session = Depends(get_db)):
    return services.create_room(db, payload)


@api_router.put(
    "/rooms/{room_id}",
    response_model=schemas.RoomOut,
    dependencies=[Depends(require_admin)],
    tags=["Rooms API"],
)
def update_room_route(room_id: int, payload: schemas.RoomUpdate, db: Session = Depends(get_db)):
    return services.update_room(db, room_id, payload)


@api_router.patch(
    "/rooms/{room_id}/active",
    response_model=schemas.RoomOut,
    dependencies=[Depends(require_admin)],
    tags=["Rooms API"],
)
def set_room_active_route(room_id: int, active: bool = Query(...), db: Session = Depends(get_db)):
    return services.set_room_active(db, room_id, active)


@api_router.delete("/rooms/{room_id}", dependencies=[Depends(require_admin)], tags=["Rooms API"])
def delete_room_route(room_id: int, db: Session = Depends(get_db)):
    return services.delete_room(db, room_id)
