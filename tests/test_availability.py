from datetime import datetime

import pytest

from modules.booking.models import BookingStatus
from modules.booking.services import list_available_rooms
from modules.common.errors import ValidationFailed


def at(hour, minute=0):
    return datetime(2099, 3, 2, hour, minute)


def test_busy_rooms_are_excluded(db, teacher, make_room, make_booking):
    busy = make_room(code="A1")
    free = make_room(code="A2")
    adjacent = make_room(code="A3")
    make_booking(busy, teacher, at(9), at(10, 30))
    make_booking(adjacent, teacher, at(8), at(9))

    rooms = list_available_rooms(db, at(9), at(10))
    assert [r.code for r in rooms] == ["A2", "A3"]
    assert busy.id not in {r.id for r in rooms}
    assert free.id in {r.id for r in rooms}


def test_cancelled_bookings_do_not_block(db, teacher, make_room, make_booking):
    room = make_room()
    make_booking(room, teacher, at(9), at(10), status=BookingStatus.CANCELLED)
    assert [r.id for r in list_available_rooms(db, at(9), at(10))] == [room.id]


@pytest.mark.parametrize("status", [BookingStatus.PENDING, BookingStatus.APPROVED, BookingStatus.REJECTED])
def test_non_cancelled_bookings_block(db, teacher, make_room, make_booking, status):
    room = make_room()
    make_booking(room, teacher, at(9), at(10), status=status)
    assert list_available_rooms(db, at(9, 59), at(11)) == []


def test_inactive_rooms_are_never_available(db, make_room):
    make_room(is_active=False)
    active = make_room()
    assert [r.id for r in list_available_rooms(db, at(9), at(10))] == [active.id]


def test_window_must_be_ordered(db):
    with pytest.raises(ValidationFailed):
        list_available_rooms(db, at(10), at(10))
    with pytest.raises(ValidationFailed):
        list_available_rooms(db, at(11), at(10))


def test_past_windows_are_allowed(db, make_room):
    room = make_room()
    rooms = list_available_rooms(db, datetime(2000, 1, 1, 9), datetime(2000, 1, 1, 10))
    assert [r.id for r in rooms] == [room.id]
