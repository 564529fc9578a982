"""Concurrent bookings and status changes against a shared database."""

import asyncio
from collections.abc import AsyncGenerator
from datetime import date
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.exceptions import ConflictException, SlotConflictException
from app.core.permissions import Actor, ActorKind
from app.models import appointments, metadata, users
from app.models.appointments import ACTIVE_SLOT_INDEX
from app.schemas.appointments import AppointmentCreate, AppointmentStatus, AppointmentType
from app.services.appointment_service import AppointmentService, is_slot_conflict

HOSPITAL = "HOSP1"
CONTENDERS = 4


@pytest_asyncio.fixture
async def shared_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """A file-backed SQLite database that several connections can share."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    await engine.dispose()


async def seed(engine: AsyncEngine) -> tuple[UUID, list[UUID]]:
    doctor_id = uuid4()
    patient_ids = [uuid4() for _ in range(CONTENDERS)]

    async with engine.begin() as conn:
        await conn.execute(
            insert(users).values(
                id=doctor_id,
                email="doctor@example.com",
                full_name="Doctor",
                role="doctor",
                tenant_id=HOSPITAL,
                is_active=True,
                specialization="Cardiology",
            )
        )
        for n, patient_id in enumerate(patient_ids):
            await conn.execute(
                insert(users).values(
                    id=patient_id,
                    email=f"patient{n}@example.com",
                    full_name=f"Patient {n}",
                    role="patient",
                    tenant_id=HOSPITAL,
                    is_active=True,
                )
            )

    return doctor_id, patient_ids


class TestConcurrentBooking:
    """The live-slot index under simultaneous bookings."""

    @pytest.mark.asyncio
    async def test_exactly_one_booking_wins(
        self,
        shared_engine: AsyncEngine,
        booking_date: date,
    ) -> None:
        doctor_id, patient_ids = await seed(shared_engine)
        session_factory = async_sessionmaker(
            shared_engine, class_=AsyncSession, expire_on_commit=False
        )

        async def book(patient_id: UUID) -> str:
            actor = Actor(id=patient_id, kind=ActorKind.PATIENT, tenant_id=HOSPITAL)
            data = AppointmentCreate(
                doctor_id=doctor_id,
                date=booking_date,
                time_slot="09:00",
                type=AppointmentType.CLINIC_VISIT,
            )
            async with session_factory() as session:
                try:
                    await AppointmentService(session).create_appointment(actor, data)
                except SlotConflictException:
                    return "conflict"
            return "ok"

        outcomes = await asyncio.gather(*(book(patient_id) for patient_id in patient_ids))

        assert sorted(outcomes) == ["conflict"] * (CONTENDERS - 1) + ["ok"]

        async with session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(appointments)
                .where(appointments.c.doctor_id == doctor_id)
            )
            assert result.scalar() == 1


class TestStaleTransition:
    """The compare-and-set status update."""

    @pytest.mark.asyncio
    async def test_stale_row_is_rejected_without_writing(
        self,
        db_session: AsyncSession,
        seeded_users: dict,
        insert_appointment,
        booking_date: date,
    ) -> None:
        appointment_id = await insert_appointment(booking_date, "15:00")
        service = AppointmentService(db_session)
        stale = await service._get_row(appointment_id)

        # Another request confirms the appointment after it was read
        await db_session.execute(
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(status="confirmed")
        )
        await db_session.commit()
        current = await service._get_row(appointment_id)

        doctor = Actor(id=seeded_users["doctor"], kind=ActorKind.DOCTOR, tenant_id=HOSPITAL)
        with pytest.raises(ConflictException) as exc_info:
            await service._transition(doctor, stale, AppointmentStatus.CANCELLED, "Clinic closed")
        await db_session.rollback()

        assert exc_info.value.status_code == 409
        assert await service._get_row(appointment_id) == current


class TestInsertErrors:
    """Only the live-slot index maps to a slot conflict."""

    def test_index_violations_are_slot_conflicts(self) -> None:
        postgres = IntegrityError(
            "INSERT",
            {},
            Exception(f'duplicate key value violates unique constraint "{ACTIVE_SLOT_INDEX}"'),
        )
        sqlite = IntegrityError(
            "INSERT",
            {},
            Exception(
                "UNIQUE constraint failed: "
                "appointments.doctor_id, appointments.date, appointments.time_slot"
            ),
        )
        assert is_slot_conflict(postgres)
        assert is_slot_conflict(sqlite)

    def test_other_violations_are_not(self) -> None:
        error = IntegrityError(
            "INSERT", {}, Exception("NOT NULL constraint failed: appointments.tenant_id")
        )
        assert not is_slot_conflict(error)

    @pytest.mark.asyncio
    async def test_missing_tenant_is_not_reported_as_booked_slot(
        self,
        db_session: AsyncSession,
        seeded_users: dict,
        booking_date: date,
    ) -> None:
        doctor_id, patient_id = uuid4(), uuid4()
        for user_id, role in ((doctor_id, "doctor"), (patient_id, "patient")):
            await db_session.execute(
                insert(users).values(
                    id=user_id,
                    email=f"{role}-no-hospital@example.com",
                    full_name=f"Unassigned {role.title()}",
                    role=role,
                    tenant_id=None,
                    is_active=True,
                )
            )
        await db_session.commit()

        super_admin = Actor(
            id=seeded_users["super_admin"], kind=ActorKind.SUPER_ADMIN, tenant_id=None
        )
        data = AppointmentCreate(
            patient_id=patient_id,
            doctor_id=doctor_id,
            date=booking_date,
            time_slot="09:00",
            type=AppointmentType.CLINIC_VISIT,
        )

        with pytest.raises(IntegrityError):
            await AppointmentService(db_session).create_appointment(super_admin, data)
