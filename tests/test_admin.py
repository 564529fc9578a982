"""Tests for admin endpoints."""

from datetime import date
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import appointments

BULK_URL = "/api/v1/admin/appointments/bulk-status"


async def statuses(db_session: AsyncSession, *ids) -> list[str]:
    result = await db_session.execute(
        select(appointments.c.id, appointments.c.status).where(appointments.c.id.in_(ids))
    )
    by_id = {row.id: row.status for row in result}
    return [by_id[appointment_id] for appointment_id in ids]


@pytest.mark.asyncio
class TestBulkStatusUpdate:
    """Tests for the atomic bulk status endpoint."""

    async def test_bulk_update_as_admin(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        insert_appointment,
        auth_headers,
        booking_date: date,
    ):
        first = await insert_appointment(booking_date, "09:00")
        second = await insert_appointment(booking_date, "09:30", status="confirmed")

        response = await client.post(
            BULK_URL,
            json={
                "operations": [
                    {"appointment_id": str(first), "status": "confirmed"},
                    {"appointment_id": str(second), "status": "completed"},
                ]
            },
            headers=auth_headers("admin"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["results"][0] == {
            "appointment_id": str(first),
            "from_status": "scheduled",
            "to_status": "confirmed",
        }
        assert data["results"][1]["to_status"] == "completed"
        assert await statuses(db_session, first, second) == ["confirmed", "completed"]

    async def test_bulk_update_rolls_back_on_failure(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        insert_appointment,
        auth_headers,
        booking_date: date,
    ):
        first = await insert_appointment(booking_date, "09:00")
        second = await insert_appointment(booking_date, "09:30")

        response = await client.post(
            BULK_URL,
            json={
                "operations": [
                    {"appointment_id": str(first), "status": "confirmed"},
                    {"appointment_id": str(second), "status": "completed"},
                ]
            },
            headers=auth_headers("admin"),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "BulkOperationException"
        assert body["message"].startswith("Operation 2 failed:")
        assert body["message"].endswith("All changes have been rolled back.")
        assert body["details"] == {
            "operation_index": 2,
            "cause": "InvalidTransitionException",
        }
        assert await statuses(db_session, first, second) == ["scheduled", "scheduled"]

    async def test_bulk_update_unknown_appointment(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        insert_appointment,
        auth_headers,
        booking_date: date,
    ):
        first = await insert_appointment(booking_date, "09:00")

        response = await client.post(
            BULK_URL,
            json={
                "operations": [
                    {"appointment_id": str(first), "status": "cancelled"},
                    {"appointment_id": str(uuid4()), "status": "confirmed"},
                ]
            },
            headers=auth_headers("admin"),
        )

        assert response.status_code == 404
        assert response.json()["details"]["operation_index"] == 2
        assert await statuses(db_session, first) == ["scheduled"]

    async def test_bulk_update_other_hospital(
        self,
        client: AsyncClient,
        insert_appointment,
        auth_headers,
        booking_date: date,
    ):
        appointment_id = await insert_appointment(booking_date, "09:00")

        response = await client.post(
            BULK_URL,
            json={"operations": [{"appointment_id": str(appointment_id), "status": "confirmed"}]},
            headers=auth_headers("foreign_admin"),
        )

        assert response.status_code == 403

    async def test_bulk_update_non_admin(
        self,
        client: AsyncClient,
        insert_appointment,
        auth_headers,
        booking_date: date,
    ):
        appointment_id = await insert_appointment(booking_date, "09:00")

        for name in ("patient", "doctor"):
            response = await client.post(
                BULK_URL,
                json={
                    "operations": [{"appointment_id": str(appointment_id), "status": "confirmed"}]
                },
                headers=auth_headers(name),
            )
            assert response.status_code == 403, name

    async def test_bulk_update_batch_size(
        self,
        client: AsyncClient,
        auth_headers,
    ):
        response = await client.post(
            BULK_URL, json={"operations": []}, headers=auth_headers("admin")
        )
        assert response.status_code == 422

        operations = [{"appointment_id": str(uuid4()), "status": "confirmed"}] * 101
        response = await client.post(
            BULK_URL, json={"operations": operations}, headers=auth_headers("admin")
        )
        assert response.status_code == 422
