import os

# must be set before any application module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PASSWORD_HASH_METHOD"] = "pbkdf2:sha256:1000"
os.environ["EMAIL_ENABLED"] = "true"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["DEFAULT_ADMIN_PASSWORD"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.base import Base
from database.connection import get_db, import_all_models
from modules.booking.models import Booking, BookingStatus
from modules.organization.models import Building, Department, Room
from modules.security.passwords import hash_password
from modules.security.tokens import token_service
from modules.users.models import User, UserRole

import_all_models()

PASSWORD = "Secret123!"


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def file_sessionmaker(tmp_path):
    """Sessions on a file-backed database, one connection each, for multi-threaded tests."""
    eng = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=eng)
    yield sessionmaker(autocommit=False, autoflush=False, bind=eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    from main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------- factories ----------
@pytest.fixture()
def make_department(db):
    def _make(name="Mathematics"):
        dept = Department(name=name)
        db.add(dept)
        db.commit()
        db.refresh(dept)
        return dept
    return _make


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.TEACHER, email=None, password=PASSWORD, department_id=None, **kw):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@school.edu",
            password_hash=kw.pop("password_hash", None) or hash_password(password),
            full_name=kw.pop("full_name", f"User {counter['n']}"),
            role=UserRole(role).value,
            email_confirmed=kw.pop("email_confirmed", True),
            department_id=department_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture()
def make_room(db):
    state = {"building": None, "n": 0}

    def _make(code=None, capacity=30, is_active=True, building=None):
        if building is None:
            if state["building"] is None:
                state["building"] = Building(name="Main Hall")
                db.add(state["building"])
                db.commit()
            building = state["building"]
        state["n"] += 1
        room = Room(
            building_id=building.id,
            code=code or f"R{100 + state['n']}",
            capacity=capacity,
            is_active=is_active,
        )
        db.add(room)
        db.commit()
        db.refresh(room)
        return room
    return _make


@pytest.fixture()
def make_booking(db):
    def _make(room, teacher, starts_at, ends_at, status=BookingStatus.PENDING, title="Lecture"):
        booking = Booking(
            room_id=room.id,
            teacher_id=teacher.id,
            title=title,
            starts_at=starts_at,
            ends_at=ends_at,
            status=status,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking
    return _make


@pytest.fixture()
def teacher(make_user, make_department):
    dept = make_department()
    return make_user(UserRole.TEACHER, email="teacher@school.edu", department_id=dept.id)


@pytest.fixture()
def admin(make_user):
    return make_user(UserRole.ADMIN, email="admin@school.edu")


@pytest.fixture()
def staff(make_user):
    return make_user(UserRole.STAFF, email="staff@school.edu")


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {token_service.issue(user.id, user.email, user.role)}"}
    return _headers


@pytest.fixture(autouse=True)
def empty_outboxes():
    from modules.booking import services as booking_services
    from modules.security import services as auth_services

    booking_services.email_svc.outbox.clear()
    auth_services.email_svc.outbox.clear()
    yield
