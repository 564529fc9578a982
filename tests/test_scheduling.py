"""Tests for the slot catalogue."""

from datetime import date, time, timedelta
from zoneinfo import ZoneInfo

from app.services.scheduling import (
    ALL_SLOTS,
    generate_slot_catalogue,
    is_bookable_slot,
    slot_start,
    subtract_booked,
)


def test_catalogue_covers_clinical_day():
    assert ALL_SLOTS[0] == "09:00"
    assert ALL_SLOTS[-1] == "20:00"
    assert len(ALL_SLOTS) == 23
    assert list(ALL_SLOTS) == sorted(ALL_SLOTS)


def test_custom_catalogue():
    slots = generate_slot_catalogue(time(8, 0), time(10, 0), timedelta(minutes=45))
    assert slots == ["08:00", "08:45", "09:30"]


def test_is_bookable_slot():
    assert is_bookable_slot("13:30")
    assert not is_bookable_slot("13:15")
    assert not is_bookable_slot("20:30")
    assert not is_bookable_slot("08:30")


def test_subtract_booked_keeps_order():
    availability = subtract_booked(ALL_SLOTS, {"10:00", "09:00"})
    assert availability.booked_slots == ["09:00", "10:00"]
    assert availability.available_slots[:2] == ["09:30", "10:30"]
    assert set(availability.available_slots).isdisjoint(availability.booked_slots)
    assert len(availability.available_slots) + len(availability.booked_slots) == len(ALL_SLOTS)


def test_slot_start_is_timezone_aware():
    moment = slot_start(date(2025, 1, 10), "09:30", ZoneInfo("Europe/Berlin"))
    assert moment.utcoffset() == timedelta(hours=1)
    assert (moment.hour, moment.minute) == (9, 30)
