import itertools
import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from modules.booking import services
from modules.booking.models import Booking, BookingStatus
from modules.common.errors import (
    AlreadyCancelled,
    AuthorizationDenied,
    BookingNotFound,
    InvalidStatusTransition,
    InvalidTimeOrder,
    InvalidTitle,
    PastStartTime,
    RoomInactive,
    RoomNotFound,
    SlotConflict,
    TeacherNotFound,
    ValidationFailed,
)
from modules.organization.models import Building, Room
from modules.users.models import User, UserRole


def at(hour, minute=0, day=1):
    return datetime(2099, 1, day, hour, minute)


def book(db, user, room, starts_at, ends_at, title="Algebra", **kw):
    return services.create_booking(
        db,
        requester_id=user.id,
        requester_role=user.role,
        room_id=room.id,
        title=title,
        starts_at=starts_at,
        ends_at=ends_at,
        **kw,
    )


# ---------- create ----------
def test_teacher_books_free_slot_as_pending(db, teacher, make_room):
    room = make_room()
    booking = book(db, teacher, room, at(10), at(11))
    assert booking.id is not None
    assert booking.status == BookingStatus.PENDING
    assert booking.teacher_id == teacher.id
    assert booking.room_id == room.id


def test_overlapping_slot_is_rejected(db, teacher, make_room):
    room = make_room()
    book(db, teacher, room, at(10), at(11))
    with pytest.raises(SlotConflict):
        book(db, teacher, room, at(10, 30), at(11, 30))
    assert db.query(Booking).count() == 1


def test_back_to_back_slots_do_not_conflict(db, teacher, make_room):
    room = make_room()
    book(db, teacher, room, at(10), at(11))
    second = book(db, teacher, room, at(11), at(12))
    assert second.status == BookingStatus.PENDING


def test_enclosing_slot_conflicts(db, teacher, make_room):
    room = make_room()
    book(db, teacher, room, at(10), at(11))
    with pytest.raises(SlotConflict):
        book(db, teacher, room, at(9), at(12))


def test_same_slot_in_another_room_is_allowed(db, teacher, make_room):
    first, second = make_room(), make_room()
    book(db, teacher, first, at(10), at(11))
    assert book(db, teacher, second, at(10), at(11)).room_id == second.id


def test_cancelled_booking_frees_the_slot(db, teacher, make_room, make_booking):
    room = make_room()
    make_booking(room, teacher, at(10), at(11), status=BookingStatus.CANCELLED)
    assert book(db, teacher, room, at(10), at(11)).status == BookingStatus.PENDING


def test_rejected_booking_still_blocks(db, teacher, make_room, make_booking):
    room = make_room()
    make_booking(room, teacher, at(10), at(11), status=BookingStatus.REJECTED)
    with pytest.raises(SlotConflict):
        book(db, teacher, room, at(10, 15), at(10, 45))


def test_teacher_id_is_ignored_for_teachers(db, teacher, make_user, make_room):
    other = make_user(UserRole.TEACHER)
    booking = book(db, teacher, make_room(), at(10), at(11), teacher_id=other.id)
    assert booking.teacher_id == teacher.id


def test_staff_cannot_book(db, staff, make_room):
    with pytest.raises(AuthorizationDenied):
        book(db, staff, make_room(), at(10), at(11))


def test_admin_must_name_a_teacher(db, admin, teacher, make_room):
    room = make_room()
    with pytest.raises(ValidationFailed):
        book(db, admin, room, at(10), at(11))
    with pytest.raises(TeacherNotFound):
        book(db, admin, room, at(10), at(11), teacher_id=admin.id)
    booking = book(db, admin, room, at(10), at(11), teacher_id=teacher.id)
    assert booking.teacher_id == teacher.id


def test_unknown_and_inactive_rooms(db, teacher, make_room):
    class Missing:
        id = 9999

    with pytest.raises(RoomNotFound):
        book(db, teacher, Missing, at(10), at(11))
    with pytest.raises(RoomInactive):
        book(db, teacher, make_room(is_active=False), at(10), at(11))


@pytest.mark.parametrize("title", ["", "   ", None, "x" * 201])
def test_invalid_titles(db, teacher, make_room, title):
    with pytest.raises(InvalidTitle):
        book(db, teacher, make_room(), at(10), at(11), title=title)


def test_title_of_max_length_is_accepted(db, teacher, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11), title="x" * 200)
    assert len(booking.title) == 200


def test_time_window_rules(db, teacher, make_room):
    room = make_room()
    now = datetime(2099, 1, 1, 10, 0)
    with pytest.raises(PastStartTime):
        book(db, teacher, room, at(10), at(11), now=now)
    with pytest.raises(InvalidTimeOrder):
        book(db, teacher, room, at(11), at(11))
    with pytest.raises(InvalidTimeOrder):
        book(db, teacher, room, at(12), at(11))


def test_aware_datetimes_are_stored_as_utc(db, teacher, make_room):
    plus_two = timezone(timedelta(hours=2))
    booking = book(
        db, teacher, make_room(),
        datetime(2099, 1, 1, 12, 0, tzinfo=plus_two),
        datetime(2099, 1, 1, 13, 0, tzinfo=plus_two),
    )
    assert booking.starts_at == at(10)
    assert booking.ends_at == at(11)


# ---------- update ----------
def test_update_may_keep_its_own_slot(db, teacher, make_room):
    room = make_room()
    booking = book(db, teacher, room, at(10), at(11))
    updated = services.update_booking(
        db, teacher.id, teacher.role, booking.id,
        room_id=room.id, title="Geometry", starts_at=at(10, 30), ends_at=at(11, 30),
    )
    assert updated.title == "Geometry"
    assert updated.starts_at == at(10, 30)


def test_update_into_another_booking_conflicts(db, teacher, make_room):
    room = make_room()
    book(db, teacher, room, at(10), at(11))
    later = book(db, teacher, room, at(12), at(13))
    with pytest.raises(SlotConflict):
        services.update_booking(
            db, teacher.id, teacher.role, later.id,
            room_id=room.id, title="Moved", starts_at=at(10, 30), ends_at=at(12, 30),
        )
    db.refresh(later)
    assert later.starts_at == at(12)


def test_update_by_another_teacher_is_denied(db, teacher, make_user, make_room):
    room = make_room()
    booking = book(db, teacher, room, at(10), at(11))
    intruder = make_user(UserRole.TEACHER)
    with pytest.raises(AuthorizationDenied):
        services.update_booking(
            db, intruder.id, intruder.role, booking.id,
            room_id=room.id, title="Mine now", starts_at=at(10), ends_at=at(11),
        )


def test_admin_can_reassign_teacher(db, admin, teacher, make_user, make_room):
    room = make_room()
    booking = book(db, teacher, room, at(10), at(11))
    other = make_user(UserRole.TEACHER)
    updated = services.update_booking(
        db, admin.id, admin.role, booking.id,
        room_id=room.id, title="Algebra", starts_at=at(10), ends_at=at(11), teacher_id=other.id,
    )
    assert updated.teacher_id == other.id


def test_cancelled_booking_cannot_be_updated(db, teacher, make_room):
    room = make_room()
    booking = book(db, teacher, room, at(10), at(11))
    services.cancel_booking(db, teacher.id, teacher.role, booking.id)
    with pytest.raises(AlreadyCancelled):
        services.update_booking(
            db, teacher.id, teacher.role, booking.id,
            room_id=room.id, title="Again", starts_at=at(10), ends_at=at(11),
        )


def test_update_missing_booking(db, teacher, make_room):
    with pytest.raises(BookingNotFound):
        services.update_booking(
            db, teacher.id, teacher.role, 404,
            room_id=make_room().id, title="Ghost", starts_at=at(10), ends_at=at(11),
        )


# ---------- cancel ----------
def test_cancel_is_a_status_change_and_not_repeatable(db, teacher, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11))
    cancelled = services.cancel_booking(db, teacher.id, teacher.role, booking.id)
    assert cancelled.status == BookingStatus.CANCELLED
    assert db.get(Booking, booking.id) is not None
    with pytest.raises(AlreadyCancelled):
        services.cancel_booking(db, teacher.id, teacher.role, booking.id)


def test_cancel_by_other_teacher_is_denied_but_admin_may(db, admin, teacher, make_user, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11))
    other = make_user(UserRole.TEACHER)
    with pytest.raises(AuthorizationDenied):
        services.cancel_booking(db, other.id, other.role, booking.id)
    assert services.cancel_booking(db, admin.id, admin.role, booking.id).status == BookingStatus.CANCELLED


def test_cancel_sends_notification(db, teacher, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11))
    sent_before = len(services.email_svc.outbox)
    services.cancel_booking(db, teacher.id, teacher.role, booking.id)
    assert len(services.email_svc.outbox) == sent_before + 1
    assert services.email_svc.outbox[-1]["To"] == teacher.email


# ---------- status ----------
def test_admin_approves_pending_booking(db, admin, teacher, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11))
    approved = services.set_booking_status(db, admin.id, admin.role, booking.id, BookingStatus.APPROVED)
    assert approved.status == BookingStatus.APPROVED


def test_status_transitions_follow_the_workflow(db, admin, teacher, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11))
    services.set_booking_status(db, admin.id, admin.role, booking.id, BookingStatus.REJECTED)
    with pytest.raises(InvalidStatusTransition):
        services.set_booking_status(db, admin.id, admin.role, booking.id, BookingStatus.APPROVED)
    services.set_booking_status(db, admin.id, admin.role, booking.id, BookingStatus.CANCELLED)
    with pytest.raises(AlreadyCancelled):
        services.set_booking_status(db, admin.id, admin.role, booking.id, BookingStatus.PENDING)


def test_only_admin_sets_status(db, teacher, make_room):
    booking = book(db, teacher, make_room(), at(10), at(11))
    with pytest.raises(AuthorizationDenied):
        services.set_booking_status(db, teacher.id, teacher.role, booking.id, BookingStatus.APPROVED)


# ---------- queries ----------
def test_list_bookings_filters(db, teacher, make_user, make_room):
    room_a, room_b = make_room(), make_room()
    other = make_user(UserRole.TEACHER)
    book(db, teacher, room_a, at(8), at(9))
    book(db, other, room_b, at(8), at(9))
    book(db, teacher, room_b, at(10), at(11), title="Late")

    assert len(services.list_bookings(db)) == 3
    assert {b.room_id for b in services.list_bookings(db, room_id=room_b.id)} == {room_b.id}
    assert {b.teacher_id for b in services.list_bookings(db, teacher_id=teacher.id)} == {teacher.id}
    in_window = services.list_bookings(db, date_from=at(9, 30), date_to=at(12))
    assert [b.title for b in in_window] == ["Late"]


def test_get_booking_missing(db):
    with pytest.raises(BookingNotFound):
        services.get_booking(db, 12345)


# ---------- overlap under concurrency ----------
def test_simultaneous_requests_for_one_slot_create_one_booking(file_sessionmaker, monkeypatch):
    with file_sessionmaker() as s:
        building = Building(name="Annex")
        s.add(building)
        s.flush()
        room = Room(building_id=building.id, code="A1", capacity=20)
        teachers = [
            User(email=f"t{i}@school.edu", password_hash="x", full_name=f"T{i}", role=UserRole.TEACHER.value)
            for i in range(6)
        ]
        s.add(room)
        s.add_all(teachers)
        s.commit()
        room_id, teacher_ids = room.id, [t.id for t in teachers]

    # every request has passed validation before any of them takes the room
    all_ready = threading.Barrier(len(teacher_ids), timeout=10)
    real_lock_room = services._lock_room

    def lock_room_when_all_ready(db, room_id):
        all_ready.wait()
        return real_lock_room(db, room_id)

    monkeypatch.setattr(services, "_lock_room", lock_room_when_all_ready)

    results = []

    def request(teacher_id):
        with file_sessionmaker() as s:
            try:
                services.create_booking(
                    s, teacher_id, UserRole.TEACHER, room_id, "Algebra", at(10), at(11),
                )
                results.append("ok")
            except SlotConflict:
                results.append("SlotConflict")

    threads = [threading.Thread(target=request, args=(tid,)) for tid in teacher_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == ["SlotConflict"] * (len(teacher_ids) - 1) + ["ok"]
    with file_sessionmaker() as s:
        assert s.query(Booking).filter(Booking.room_id == room_id).count() == 1


def test_random_operation_sequence_never_double_books(db, teacher, make_user, make_room):
    rng = random.Random(20240611)
    rooms = [make_room() for _ in range(3)]
    teachers = {t.id: t for t in (teacher, make_user(UserRole.TEACHER), make_user(UserRole.TEACHER))}
    outcomes = {"ok": 0, "SlotConflict": 0}

    def random_window():
        start = datetime(2099, 1, rng.randint(1, 3), 8) + timedelta(minutes=30 * rng.randint(0, 18))
        return start, start + timedelta(minutes=30 * rng.randint(1, 6))

    for _ in range(300):
        live = db.query(Booking).filter(Booking.status != BookingStatus.CANCELLED).all()
        op = rng.choice(["create", "create", "update", "cancel"]) if live else "create"
        try:
            if op == "create":
                user = rng.choice(list(teachers.values()))
                book(db, user, rng.choice(rooms), *random_window())
            elif op == "update":
                target = rng.choice(live)
                owner = teachers[target.teacher_id]
                starts_at, ends_at = random_window()
                services.update_booking(
                    db, owner.id, owner.role, target.id,
                    room_id=rng.choice(rooms).id, title=target.title, starts_at=starts_at, ends_at=ends_at,
                )
            else:
                target = rng.choice(live)
                services.cancel_booking(db, target.teacher_id, UserRole.TEACHER, target.id)
            outcomes["ok"] += 1
        except SlotConflict:
            outcomes["SlotConflict"] += 1

    assert outcomes["ok"] > 0
    assert outcomes["SlotConflict"] > 0

    live = db.query(Booking).filter(Booking.status != BookingStatus.CANCELLED).all()
    for a, b in itertools.combinations(live, 2):
        if a.room_id == b.room_id:
            assert not (a.starts_at < b.ends_at and b.starts_at < a.ends_at), (a.id, b.id)
