"""Tests for the notification emitter."""

from datetime import date
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.services.notification_service import NotificationService


def appointment_row(**overrides) -> dict:
    row = {
        "id": uuid4(),
        "patient_id": uuid4(),
        "doctor_id": uuid4(),
        "tenant_id": "HOSP1",
        "date": date(2030, 1, 15),
        "time_slot": "10:00",
        "status": "scheduled",
    }
    row.update(overrides)
    return row


class TestNotificationService:
    """NotificationService.record with a mocked session."""

    @pytest.mark.asyncio
    async def test_record_commits(self) -> None:
        db = AsyncMock()

        await NotificationService.record(
            db, uuid4(), "HOSP1", "appointment_booked", "Appointment Booked", "Booked."
        )

        db.execute.assert_awaited_once()
        db.commit.assert_awaited_once()
        db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_record_failure_is_logged_not_raised(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))

        await NotificationService.record(
            db, uuid4(), "HOSP1", "appointment_booked", "Appointment Booked", "Booked."
        )

        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_booking_notifies_patient_and_doctor_despite_failures(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = OperationalError("INSERT", {}, Exception("locked"))
        row = appointment_row()

        await NotificationService.appointment_booked(db, row)

        assert db.execute.await_count == 2
        assert db.rollback.await_count == 2

    @pytest.mark.asyncio
    async def test_cancellation_skips_the_canceller(self) -> None:
        db = AsyncMock()
        row = appointment_row(status="cancelled", cancel_reason="Travelling")

        await NotificationService.appointment_cancelled(db, row, cancelled_by=row["patient_id"])

        db.execute.assert_awaited_once()
        statement = db.execute.await_args.args[0]
        assert statement.compile().params["user_id"] == row["doctor_id"]
