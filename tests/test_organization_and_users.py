from datetime import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from modules.booking.models import BookingStatus
from modules.common.errors import Conflict, NotFound, ValidationFailed
from modules.organization import schemas as org_schemas
from modules.organization import services as org
from modules.security import services as auth
from modules.security.models import RefreshToken
from modules.users import schemas as user_schemas
from modules.users import services as users
from modules.users.models import User, UserRole


# ---------- departments ----------
def test_department_names_unique_case_insensitive(db):
    org.create_department(db, org_schemas.DepartmentCreate(name="  Physics "))
    with pytest.raises(Conflict):
        org.create_department(db, org_schemas.DepartmentCreate(name="physics"))
    assert [d["name"] for d in org.get_departments(db)] == ["Physics"]


def test_delete_department_detaches_members(db, make_department, make_user):
    dept = make_department("Chemistry")
    member = make_user(department_id=dept.id)
    result = org.delete_department(db, dept.id)
    assert result["detached_users"] == 1
    db.refresh(member)
    assert member.department_id is None


def test_department_user_count(db, make_department, make_user):
    dept = make_department("Biology")
    make_user(department_id=dept.id)
    make_user(department_id=dept.id)
    row = org.get_departments(db)[0]
    assert row["user_count"] == 2


# ---------- buildings ----------
def test_building_with_rooms_cannot_be_deleted(db):
    building = org.create_building(db, org_schemas.BuildingCreate(name="North"))
    org.create_room(db, org_schemas.RoomCreate(building_id=building.id, code="N1", capacity=20))
    with pytest.raises(Conflict):
        org.delete_building(db, building.id)

    detail = org.get_building_detail(db, building.id)
    assert detail["room_count"] == 1
    assert [r.code for r in detail["rooms"]] == ["N1"]


def test_rename_building_to_taken_name(db):
    org.create_building(db, org_schemas.BuildingCreate(name="North"))
    south = org.create_building(db, org_schemas.BuildingCreate(name="South"))
    with pytest.raises(Conflict):
        org.update_building(db, south.id, org_schemas.BuildingUpdate(name="NORTH"))


# ---------- rooms ----------
def test_room_code_unique_per_building(db):
    north = org.create_building(db, org_schemas.BuildingCreate(name="North"))
    south = org.create_building(db, org_schemas.BuildingCreate(name="South"))
    org.create_room(db, org_schemas.RoomCreate(building_id=north.id, code="101", capacity=20))
    org.create_room(db, org_schemas.RoomCreate(building_id=south.id, code="101", capacity=20))
    with pytest.raises(Conflict):
        org.create_room(db, org_schemas.RoomCreate(building_id=north.id, code="101", capacity=10))


def test_room_requires_existing_building(db):
    with pytest.raises(NotFound):
        org.create_room(db, org_schemas.RoomCreate(building_id=42, code="X", capacity=5))


def test_room_with_any_booking_cannot_be_deleted(db, teacher, make_room, make_booking):
    room = make_room()
    make_booking(room, teacher, datetime(2099, 1, 1, 9), datetime(2099, 1, 1, 10), status=BookingStatus.CANCELLED)
    with pytest.raises(Conflict):
        org.delete_room(db, room.id)


def test_set_room_active_and_filter(db, make_room):
    room = make_room()
    make_room()
    org.set_room_active(db, room.id, False)
    assert room.id not in {r.id for r in org.get_rooms(db, active_only=True)}
    assert len(org.get_rooms(db)) == 2


# ---------- users ----------
def user_payload(**overrides):
    data = {
        "email": "Staff.Member@school.edu",
        "password": "Abcdefg1",
        "confirm_password": "Abcdefg1",
        "full_name": "Staff Member",
        "role": "Staff",
    }
    data.update(overrides)
    return user_schemas.UserCreate(**data)


def test_create_user_normalizes_email(db):
    user = users.create_user(db, user_payload())
    assert user.email == "staff.member@school.edu"
    with pytest.raises(Conflict):
        users.create_user(db, user_payload(email="STAFF.MEMBER@school.edu"))


def test_teacher_requires_existing_department(db, make_department):
    with pytest.raises(ValidationFailed):
        users.create_user(db, user_payload(role="Teacher"))
    with pytest.raises(NotFound):
        users.create_user(db, user_payload(role="Teacher", department_id=77))
    dept = make_department()
    assert users.create_user(db, user_payload(role="Teacher", department_id=dept.id)).department_id == dept.id


def test_create_user_enforces_password_policy(db):
    with pytest.raises(ValidationFailed):
        users.create_user(db, user_payload(password="abcdefgh", confirm_password="abcdefgh"))


def test_update_user_email_collision(db, make_user):
    first = make_user(email="one@school.edu")
    make_user(email="two@school.edu")
    with pytest.raises(Conflict):
        users.update_user(db, first.id, user_schemas.UserUpdate(email="TWO@school.edu"))
    updated = users.update_user(db, first.id, user_schemas.UserUpdate(role=UserRole.ADMIN, full_name=" Boss "))
    assert updated.role == "Admin"
    assert updated.full_name == "Boss"


def test_delete_user_with_bookings_is_refused(db, teacher, make_room, make_booking):
    make_booking(make_room(), teacher, datetime(2099, 1, 1, 9), datetime(2099, 1, 1, 10))
    with pytest.raises(Conflict):
        users.delete_user(db, teacher.id)


def test_delete_user_removes_tokens(db, make_user):
    user = make_user()
    auth.login(db, user.email, "Secret123!")
    users.delete_user(db, user.id)
    assert db.get(User, user.id) is None
    assert db.query(RefreshToken).count() == 0


def test_blank_full_name_is_refused(db):
    with pytest.raises(PydanticValidationError):
        user_payload(full_name="   ")
    with pytest.raises(PydanticValidationError):
        user_schemas.UserUpdate(full_name="  ")
    assert users.create_user(db, user_payload(full_name="  Pat  ")).full_name == "Pat"
