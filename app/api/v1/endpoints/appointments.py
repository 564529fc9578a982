"""Appointment endpoints."""

import datetime as dt
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.exceptions import ValidationException
from app.dependencies import CacheManagerDep, CurrentActor, DatabaseSession
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStats,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    AvailableSlotsResponse,
)
from app.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> AppointmentResponse:
    """
    Book an appointment.

    Patients book for themselves; administrators pass ``patient_id``.
    A slot already held by a live appointment yields 409.
    """
    service = AppointmentService(db, cache_manager)
    return await service.create_appointment(actor, data)


@router.get(
    "/stats",
    response_model=AppointmentStats,
    status_code=status.HTTP_200_OK,
    summary="Appointment statistics",
)
async def get_appointment_stats(
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentStats:
    """
    Count appointments by status for the caller's scope.

    Returns:
        total plus one count per status
    """
    service = AppointmentService(db)
    return await service.get_stats(actor)


@router.get(
    "/slots/{doctor_id}",
    response_model=AvailableSlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="Available slots for a doctor",
)
async def get_available_slots(
    doctor_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    date: dt.date = Query(..., description="Calendar date (YYYY-MM-DD)"),
) -> AvailableSlotsResponse:
    """
    Get a doctor's available and booked slots on a date.

    Args:
        doctor_id: Doctor ID
        actor: Authenticated actor
        db: Database session
        cache_manager: Directory cache
        date: Date to inspect

    Returns:
        Slot availability
    """
    service = AppointmentService(db, cache_manager)
    return await service.get_available_slots(actor, doctor_id, date)


@router.get(
    "",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: str | None = Query(
        None, alias="status", description="Status or comma-separated statuses; 'all' for any"
    ),
    start_date: dt.date | None = Query(None),
    end_date: dt.date | None = Query(None),
    patient_id: UUID | None = Query(None, description="Admin only"),
    doctor_id: UUID | None = Query(None, description="Admin only"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments visible to the caller.

    Patients and doctors see their own appointments, admins their hospital.
    """
    try:
        statuses = AppointmentFilters.parse_status(status_filter)
    except ValueError:
        raise ValidationException(f"Invalid status filter: {status_filter}")

    filters = AppointmentFilters(
        statuses=statuses,
        start_date=start_date,
        end_date=end_date,
        patient_id=patient_id,
        doctor_id=doctor_id,
        page=page,
        limit=limit,
    )

    service = AppointmentService(db)
    return await service.list_appointments(actor, filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        NotFoundException: If the appointment does not exist
        ForbiddenException: If the caller has no access to it
    """
    service = AppointmentService(db)
    return await service.get_appointment(actor, appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Amend appointment details",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Amend the clinical (doctor) or intake (patient) fields of an appointment."""
    service = AppointmentService(db)
    return await service.update_appointment(actor, appointment_id, data)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Move an appointment along its lifecycle (confirm, complete, no-show, cancel).

    Returns 400 with the from/to pair for transitions outside the lifecycle.
    """
    service = AppointmentService(db)
    return await service.update_appointment_status(actor, appointment_id, data)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """
    Cancel an appointment.

    Patients must cancel at least 2 hours ahead; a paid consultation is
    marked refunded.
    """
    service = AppointmentService(db)
    return await service.cancel_appointment(actor, appointment_id, data or AppointmentCancel())
