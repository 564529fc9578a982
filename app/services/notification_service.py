"""Notification emitter for appointment events.

Events are stored as in-app notification records. Push/SMS delivery happens
outside this service.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notifications import notifications

logger = structlog.get_logger(__name__)

STATUS_MESSAGES = {
    "confirmed": "Your appointment on {date} at {time_slot} has been confirmed.",
    "completed": "Your appointment on {date} at {time_slot} has been completed.",
    "no_show": "You were marked as a no-show for your appointment on {date} at {time_slot}.",
    "cancelled": "Your appointment on {date} at {time_slot} has been cancelled.",
}


def _event_data(appointment: dict[str, Any]) -> dict[str, str]:
    return {
        "appointment_id": str(appointment["id"]),
        "doctor_id": str(appointment["doctor_id"]),
        "patient_id": str(appointment["patient_id"]),
        "date": appointment["date"].isoformat(),
        "time_slot": appointment["time_slot"],
        "status": appointment["status"],
    }


class NotificationService:
    """Records appointment notifications for patients and doctors."""

    @staticmethod
    async def record(
        db: AsyncSession,
        user_id: UUID,
        tenant_id: str | None,
        event: str,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
        priority: str = "medium",
    ) -> None:
        """
        Store one in-app notification.

        Errors are logged and swallowed; an appointment change never fails
        because its notification could not be recorded.

        Args:
            db: Database session
            user_id: Recipient
            tenant_id: Hospital of the appointment
            event: Event name (appointment_booked, ...)
            title: Notification title
            message: Notification body
            data: Optional structured payload
            priority: Priority level (low, medium, high, urgent)
        """
        try:
            await db.execute(
                insert(notifications).values(
                    user_id=user_id,
                    tenant_id=tenant_id,
                    notification_type="appointment",
                    event=event,
                    title=title,
                    message=message,
                    priority=priority,
                    data=data,
                )
            )
            await db.commit()
            logger.info("notification_recorded", notification_event=event, user_id=str(user_id))
        except Exception as e:
            await db.rollback()
            logger.warning(
                "failed_to_emit_notification",
                notification_event=event,
                user_id=str(user_id),
                error=str(e),
            )

    @classmethod
    async def appointment_booked(cls, db: AsyncSession, appointment: dict[str, Any]) -> None:
        """Tell the patient and the doctor about a new booking."""
        data = _event_data(appointment)
        when = f"{data['date']} at {data['time_slot']}"

        await cls.record(
            db,
            appointment["patient_id"],
            appointment["tenant_id"],
            "appointment_booked",
            "Appointment Booked",
            f"Your appointment on {when} has been booked.",
            data,
        )
        await cls.record(
            db,
            appointment["doctor_id"],
            appointment["tenant_id"],
            "appointment_booked",
            "New Appointment",
            f"A new appointment has been booked for {when}.",
            data,
        )

    @classmethod
    async def appointment_cancelled(
        cls,
        db: AsyncSession,
        appointment: dict[str, Any],
        cancelled_by: UUID,
    ) -> None:
        """Tell every participant other than the canceller about a cancellation."""
        data = _event_data(appointment)
        message = STATUS_MESSAGES["cancelled"].format(**data)
        if appointment.get("cancel_reason"):
            message = f"{message} Reason: {appointment['cancel_reason']}"

        for recipient in (appointment["patient_id"], appointment["doctor_id"]):
            if recipient == cancelled_by:
                continue
            await cls.record(
                db,
                recipient,
                appointment["tenant_id"],
                "appointment_cancelled",
                "Appointment Cancelled",
                message,
                data,
                priority="high",
            )

    @classmethod
    async def appointment_status_changed(
        cls,
        db: AsyncSession,
        appointment: dict[str, Any],
        old_status: str,
    ) -> None:
        """Tell the patient their appointment moved to a new status."""
        data = _event_data(appointment)
        data["old_status"] = old_status
        template = STATUS_MESSAGES.get(appointment["status"])
        if template is None:
            return

        await cls.record(
            db,
            appointment["patient_id"],
            appointment["tenant_id"],
            "appointment_status_changed",
            "Appointment Update",
            template.format(**data),
            data,
        )
