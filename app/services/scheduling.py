"""Slot catalogue and availability for a doctor's clinical day."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.schemas.appointments import AppointmentStatus

# Clinical day: half-hour slots starting 09:00, last start 20:00
SLOT_DAY_START = time(9, 0)
SLOT_DAY_END = time(20, 30)
SLOT_LENGTH = timedelta(minutes=30)


def generate_slot_catalogue(
    day_start: time = SLOT_DAY_START,
    day_end: time = SLOT_DAY_END,
    slot_length: timedelta = SLOT_LENGTH,
) -> list[str]:
    """
    Build the ordered list of bookable slot starts for one day.

    Args:
        day_start: First slot start
        day_end: Exclusive upper bound for slot starts
        slot_length: Spacing between slot starts

    Returns:
        ``HH:MM`` strings in ascending order
    """
    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, day_start)
    end = datetime.combine(anchor, day_end)

    slots = []
    while current < end:
        slots.append(current.strftime("%H:%M"))
        current += slot_length
    return slots


ALL_SLOTS: tuple[str, ...] = tuple(generate_slot_catalogue())


def is_bookable_slot(time_slot: str) -> bool:
    """Whether a ``HH:MM`` value is one of the day's slot starts."""
    return time_slot in ALL_SLOTS


def slot_start(day: date, time_slot: str, tz: ZoneInfo) -> datetime:
    """Aware datetime at which a slot begins on the clinic's wall clock."""
    hours, minutes = (int(part) for part in time_slot.split(":"))
    return datetime.combine(day, time(hours, minutes), tzinfo=tz)


@dataclass(frozen=True)
class SlotAvailability:
    """Result of a slot computation."""

    all_slots: list[str]
    booked_slots: list[str]
    available_slots: list[str]


def subtract_booked(all_slots: list[str] | tuple[str, ...], booked: set[str]) -> SlotAvailability:
    """Remove booked slots from the catalogue, keeping ascending order."""
    catalogue = list(all_slots)
    return SlotAvailability(
        all_slots=catalogue,
        booked_slots=sorted(booked),
        available_slots=[slot for slot in catalogue if slot not in booked],
    )


class SlotAllocator:
    """Read-only availability queries against the appointment table."""

    def __init__(self, db: AsyncSession):
        """Initialize with database session."""
        self.db = db

    async def get_booked_slots(self, doctor_id: UUID, day: date) -> set[str]:
        """Slots held by the doctor's non-cancelled appointments on a date."""
        stmt = select(appointments.c.time_slot).where(
            and_(
                appointments.c.doctor_id == doctor_id,
                appointments.c.date == day,
                appointments.c.status != AppointmentStatus.CANCELLED.value,
            )
        )
        result = await self.db.execute(stmt)
        return {row.time_slot for row in result}

    async def compute_available_slots(self, doctor_id: UUID, day: date) -> SlotAvailability:
        """
        Compute the doctor's availability for a date.

        The caller is responsible for resolving ``doctor_id`` to a doctor.

        Args:
            doctor_id: Doctor's user ID
            day: Calendar date

        Returns:
            Full catalogue, booked slots and remaining available slots
        """
        booked = await self.get_booked_slots(doctor_id, day)
        return subtract_booked(ALL_SLOTS, booked)
