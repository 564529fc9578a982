"""Appointment service for business logic."""

import math
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AppException,
    BadRequestException,
    BulkOperationException,
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
    ValidationException,
)
from app.core.permissions import (
    TRANSITION_ACTIONS,
    Action,
    Actor,
    ActorKind,
    ensure_can_access,
    ensure_same_tenant,
    require,
)
from app.core.redis_client import CacheManager
from app.models.appointments import ACTIVE_SLOT_INDEX, appointments
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStats,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    AvailableSlotsResponse,
    BulkStatusResponse,
    BulkStatusResult,
    BulkStatusUpdate,
    DoctorSummary,
    PaymentStatus,
)
from app.services.appointment_state import apply_transition
from app.services.notification_service import NotificationService
from app.services.scheduling import SLOT_DAY_END, SLOT_DAY_START, SlotAllocator, is_bookable_slot
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)

CLINICAL_FIELDS = frozenset({"diagnosis", "notes", "follow_up"})
INTAKE_FIELDS = frozenset({"symptoms", "chief_complaint"})

# SQLite reports the columns of a violated unique index rather than its name
_SQLITE_SLOT_VIOLATION = (
    "UNIQUE constraint failed: "
    "appointments.doctor_id, appointments.date, appointments.time_slot"
)


def is_slot_conflict(error: IntegrityError) -> bool:
    """True when ``error`` is a violation of the live-slot unique index."""
    message = str(error.orig)
    return ACTIVE_SLOT_INDEX in message or _SQLITE_SLOT_VIOLATION in message


class AppointmentService:
    """Service for booking appointments and driving their lifecycle."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional directory cache."""
        self.db = db
        self.users = UserService(cache_manager)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    @staticmethod
    def _to_response(row: dict[str, Any]) -> AppointmentResponse:
        return AppointmentResponse.model_validate(row)

    async def create_appointment(
        self,
        actor: Actor,
        data: AppointmentCreate,
    ) -> AppointmentResponse:
        """
        Book an appointment.

        The partial unique index on (doctor_id, date, time_slot) decides
        conflicts: of two concurrent bookings for the same live slot exactly
        one insert succeeds.

        Args:
            actor: Requester; a patient books for themselves, an admin for
                ``data.patient_id``
            data: Booking request

        Returns:
            Created appointment

        Raises:
            ValidationException: Past date, slot outside the clinical day or
                missing patient
            NotFoundException: Unknown doctor or patient
            ForbiddenException: Role or hospital mismatch
            SlotConflictException: The slot is already held
        """
        require(actor, Action.BOOK)

        today = datetime.now(settings.clinic_tz).date()
        if data.date < today:
            raise ValidationException("Appointment date cannot be in the past")

        if not is_bookable_slot(data.time_slot):
            raise ValidationException(
                f"Time slot must be a half-hour slot from {SLOT_DAY_START:%H:%M} "
                f"and before {SLOT_DAY_END:%H:%M}"
            )

        if actor.kind is ActorKind.PATIENT:
            patient_id = actor.id
        elif data.patient_id is None:
            raise ValidationException("patient_id is required when booking on a patient's behalf")
        else:
            patient_id = data.patient_id

        doctor = await self.users.get_doctor(self.db, data.doctor_id)
        ensure_same_tenant(actor, doctor["tenant_id"])

        patient = await self.users.get_patient(self.db, patient_id)
        if patient["tenant_id"] != doctor["tenant_id"]:
            raise ForbiddenException("Patient and doctor belong to different hospitals")

        values = {
            "patient_id": patient_id,
            "doctor_id": data.doctor_id,
            "tenant_id": doctor["tenant_id"],
            "date": data.date,
            "time_slot": data.time_slot,
            "type": data.type.value,
            "symptoms": data.symptoms,
            "chief_complaint": data.chief_complaint,
            "notes": data.notes,
            "status": AppointmentStatus.SCHEDULED.value,
            "payment_amount": doctor.get("consultation_fee"),
            "payment_status": PaymentStatus.PENDING.value,
        }

        try:
            result = await self.db.execute(
                insert(appointments).values(**values).returning(appointments)
            )
            row = dict(result.mappings().one())
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if not is_slot_conflict(e):
                logger.error("appointment_insert_failed", error=str(e.orig))
                raise
            logger.info(
                "appointment_slot_conflict",
                doctor_id=str(data.doctor_id),
                date=data.date.isoformat(),
                time_slot=data.time_slot,
            )
            raise SlotConflictException()

        logger.info(
            "appointment_created",
            appointment_id=str(row["id"]),
            patient_id=str(patient_id),
            doctor_id=str(data.doctor_id),
            tenant_id=row["tenant_id"],
        )

        await NotificationService.appointment_booked(self.db, row)

        return self._to_response(row)

    async def get_available_slots(
        self,
        actor: Actor,
        doctor_id: UUID,
        day: date,
    ) -> AvailableSlotsResponse:
        """
        Compute a doctor's bookable slots for a date.

        Raises:
            NotFoundException: If the doctor does not exist
            ForbiddenException: If the doctor works at another hospital
        """
        require(actor, Action.VIEW_SLOTS)

        doctor = await self.users.get_doctor(self.db, doctor_id)
        ensure_same_tenant(actor, doctor["tenant_id"])

        availability = await SlotAllocator(self.db).compute_available_slots(doctor_id, day)

        return AvailableSlotsResponse(
            date=day,
            doctor=DoctorSummary(
                id=doctor["id"],
                name=doctor.get("full_name"),
                specialization=doctor.get("specialization"),
                consultation_fee=doctor.get("consultation_fee"),
            ),
            available_slots=availability.available_slots,
            booked_slots=availability.booked_slots,
        )

    async def _get_row(self, appointment_id: UUID) -> dict[str, Any]:
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        return dict(row)

    async def _get_accessible(self, actor: Actor, appointment_id: UUID) -> dict[str, Any]:
        require(actor, Action.VIEW)
        row = await self._get_row(appointment_id)
        ensure_can_access(actor, row)
        return row

    async def get_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor doesn't have access
        """
        row = await self._get_accessible(actor, appointment_id)
        return self._to_response(row)

    @staticmethod
    def _scope_conditions(actor: Actor) -> list[Any]:
        """Row filters every read for this actor must carry."""
        conditions: list[Any] = []

        if not actor.is_super_admin:
            conditions.append(appointments.c.tenant_id == actor.tenant_id)

        if actor.kind is ActorKind.PATIENT:
            conditions.append(appointments.c.patient_id == actor.id)
        elif actor.kind is ActorKind.DOCTOR:
            conditions.append(appointments.c.doctor_id == actor.id)

        return conditions

    async def list_appointments(
        self,
        actor: Actor,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List appointments visible to the actor with filtering and pagination.

        Patients and doctors see their own appointments; admins see their
        hospital and may narrow by patient or doctor.
        """
        require(actor, Action.LIST)

        conditions = self._scope_conditions(actor)

        if actor.kind in (ActorKind.ADMIN, ActorKind.SUPER_ADMIN):
            if filters.patient_id:
                conditions.append(appointments.c.patient_id == filters.patient_id)
            if filters.doctor_id:
                conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.statuses:
            conditions.append(appointments.c.status.in_([s.value for s in filters.statuses]))

        if filters.start_date:
            conditions.append(appointments.c.date >= filters.start_date)

        if filters.end_date:
            conditions.append(appointments.c.date <= filters.end_date)

        count_stmt = select(func.count()).select_from(appointments)
        stmt = select(appointments)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            stmt = stmt.where(and_(*conditions))

        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        # Doctors work through their day in order; everyone else sees latest first
        if actor.kind is ActorKind.DOCTOR:
            ordering = (appointments.c.date.asc(), appointments.c.time_slot.asc())
        else:
            ordering = (appointments.c.date.desc(), appointments.c.time_slot.desc())

        offset = (filters.page - 1) * filters.limit
        stmt = stmt.order_by(*ordering).limit(filters.limit).offset(offset)

        result = await self.db.execute(stmt)
        items = [self._to_response(dict(row)) for row in result.mappings()]

        return AppointmentListResponse(
            items=items,
            total=total,
            page=filters.page,
            limit=filters.limit,
            pages=math.ceil(total / filters.limit) if total else 0,
        )

    async def update_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Amend the fields the actor's role may write.

        Doctors write diagnosis, notes and follow-up; patients write symptoms
        and chief complaint while the appointment is scheduled. Status is
        never changed here.

        Raises:
            ForbiddenException: If any supplied field is outside the actor's subset
            BadRequestException: Patient amending a non-scheduled appointment
        """
        row = await self._get_accessible(actor, appointment_id)

        updates = data.model_dump(exclude_unset=True, mode="json")
        if not updates:
            return self._to_response(row)

        if actor.kind is ActorKind.DOCTOR:
            require(actor, Action.AMEND_CLINICAL)
            allowed = CLINICAL_FIELDS
        elif actor.kind is ActorKind.PATIENT:
            require(actor, Action.AMEND_INTAKE)
            allowed = INTAKE_FIELDS
        else:
            allowed = frozenset()

        rejected = sorted(set(updates) - allowed)
        if rejected:
            raise ForbiddenException(
                f"Role '{actor.kind.value}' may not modify: {', '.join(rejected)}"
            )

        if actor.kind is ActorKind.PATIENT and row["status"] != AppointmentStatus.SCHEDULED.value:
            raise BadRequestException(
                "Symptoms and chief complaint can only be changed "
                "while the appointment is scheduled"
            )

        updates["updated_at"] = self._now()

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**updates)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = dict(result.mappings().one())
        await self.db.commit()

        logger.info(
            "appointment_updated",
            appointment_id=str(appointment_id),
            role=actor.kind.value,
            fields=sorted(set(updates) - {"updated_at"}),
        )

        return self._to_response(updated)

    async def _transition(
        self,
        actor: Actor,
        row: dict[str, Any],
        target: AppointmentStatus,
        cancel_reason: str | None = None,
    ) -> dict[str, Any]:
        """
        Apply one status change inside the current transaction.

        The UPDATE only matches while the row still has the status it was
        read with, so a concurrent change is reported instead of overwritten.
        """
        action = TRANSITION_ACTIONS.get(target.value)
        if action is None:
            raise InvalidTransitionException(row["status"], target.value)
        require(actor, action)

        values = apply_transition(
            row,
            target,
            actor,
            now=self._now(),
            tz=settings.clinic_tz,
            cancel_reason=cancel_reason,
        )

        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == row["id"],
                    appointments.c.status == row["status"],
                )
            )
            .values(**values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = result.mappings().first()

        if updated is None:
            raise ConflictException("Appointment was modified by another request; reload and retry")

        return dict(updated)

    async def _notify_transition(self, old_status: str, updated: dict[str, Any]) -> None:
        if updated["status"] == AppointmentStatus.CANCELLED.value:
            await NotificationService.appointment_cancelled(
                self.db, updated, cancelled_by=updated["cancelled_by"]
            )
        else:
            await NotificationService.appointment_status_changed(self.db, updated, old_status)

    async def _change_status(
        self,
        actor: Actor,
        appointment_id: UUID,
        target: AppointmentStatus,
        cancel_reason: str | None = None,
    ) -> AppointmentResponse:
        row = await self._get_accessible(actor, appointment_id)

        try:
            updated = await self._transition(actor, row, target, cancel_reason)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if target is AppointmentStatus.CANCELLED:
            logger.info(
                "appointment_cancelled",
                appointment_id=str(appointment_id),
                role=actor.kind.value,
                cancelled_by=str(actor.id),
                payment_status=updated["payment_status"],
            )
        else:
            logger.info(
                "appointment_status_changed",
                appointment_id=str(appointment_id),
                role=actor.kind.value,
                from_status=row["status"],
                to_status=target.value,
            )

        await self._notify_transition(row["status"], updated)

        return self._to_response(updated)

    async def update_appointment_status(
        self,
        actor: Actor,
        appointment_id: UUID,
        data: AppointmentStatusUpdate,
    ) -> AppointmentResponse:
        """
        Move an appointment along its lifecycle.

        Raises:
            InvalidTransitionException: If the edge is not allowed
            PolicyDeniedException: If a cancellation is refused
            ForbiddenException: If the actor's role may not make this change
        """
        return await self._change_status(actor, appointment_id, data.status, data.cancel_reason)

    async def cancel_appointment(
        self,
        actor: Actor,
        appointment_id: UUID,
        data: AppointmentCancel,
    ) -> AppointmentResponse:
        """
        Cancel an appointment, refunding a paid consultation.

        Raises:
            PolicyDeniedException: Terminal appointment or inside the patient cutoff
        """
        return await self._change_status(
            actor, appointment_id, AppointmentStatus.CANCELLED, data.cancel_reason
        )

    async def get_stats(self, actor: Actor) -> AppointmentStats:
        """
        Count the actor's appointments by status.

        ``total`` is the sum of the per-status counts from the same query.
        """
        require(actor, Action.STATS)

        conditions = self._scope_conditions(actor)
        stmt = select(appointments.c.status, func.count()).group_by(appointments.c.status)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        result = await self.db.execute(stmt)
        counts = {status: count for status, count in result}

        by_status = {status.value: counts.get(status.value, 0) for status in AppointmentStatus}
        return AppointmentStats(total=sum(by_status.values()), **by_status)

    async def bulk_update_status(
        self,
        actor: Actor,
        data: BulkStatusUpdate,
    ) -> BulkStatusResponse:
        """
        Apply a batch of status changes in one transaction.

        Each member goes through the same checks as a single update. The
        first failure rolls back the whole batch.

        Raises:
            BulkOperationException: Wrapping the first failing member's error
        """
        require(actor, Action.BULK_STATUS)

        results: list[BulkStatusResult] = []
        changed: list[tuple[str, dict[str, Any]]] = []

        try:
            for index, operation in enumerate(data.operations, start=1):
                try:
                    row = await self._get_accessible(actor, operation.appointment_id)
                    updated = await self._transition(
                        actor, row, operation.status, operation.cancel_reason
                    )
                except AppException as e:
                    raise BulkOperationException(index, e) from e

                results.append(
                    BulkStatusResult(
                        appointment_id=operation.appointment_id,
                        from_status=row["status"],
                        to_status=operation.status,
                    )
                )
                changed.append((row["status"], updated))

            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "bulk_status_update_failed",
                admin_id=str(actor.id),
                operations_count=len(data.operations),
                error=str(e),
            )
            raise

        logger.info(
            "bulk_status_update_completed",
            admin_id=str(actor.id),
            operations_count=len(data.operations),
        )

        for old_status, updated in changed:
            await self._notify_transition(old_status, updated)

        return BulkStatusResponse(processed=len(results), results=results)
