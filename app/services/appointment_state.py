"""Appointment lifecycle: status transitions and the cancellation policy.

Every change to ``status``, the cancellation fields, ``completed_at`` and
``payment_status`` is produced by :func:`apply_transition`. Callers persist
the returned values in a single statement.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from app.core.exceptions import InvalidTransitionException, PolicyDeniedException
from app.core.permissions import Actor, ActorKind
from app.schemas.appointments import AppointmentStatus, PaymentStatus
from app.services.scheduling import slot_start

S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Patients must cancel at least this long before the appointment starts
CANCELLATION_CUTOFF = timedelta(hours=2)
CANCELLATION_CUTOFF_MESSAGE = (
    "Appointments can only be cancelled at least 2 hours before the scheduled time"
)


def can_transition(from_status: AppointmentStatus, to_status: AppointmentStatus) -> bool:
    """Whether ``from_status -> to_status`` is an edge of the lifecycle."""
    return to_status in TRANSITIONS[from_status]


def ensure_transition(from_status: AppointmentStatus, to_status: AppointmentStatus) -> None:
    """Raise InvalidTransitionException unless the edge exists."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionException(from_status.value, to_status.value)


@dataclass(frozen=True)
class CancellationDecision:
    """Outcome of the cancellation policy."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "CancellationDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "CancellationDecision":
        return cls(allowed=False, reason=reason)


def can_cancel(
    appointment: dict[str, Any],
    actor_kind: ActorKind,
    now: datetime,
    tz: ZoneInfo,
) -> CancellationDecision:
    """
    Decide whether a cancellation request may proceed.

    Terminal appointments can never be cancelled. Patients are held to the
    two hour cutoff; doctors and administrators are exempt.

    Args:
        appointment: Appointment row mapping
        actor_kind: Role of the requester
        now: Current aware datetime
        tz: Clinic timezone the appointment's date and slot are expressed in

    Returns:
        Allow, or deny with a human-readable reason
    """
    status = AppointmentStatus(appointment["status"])
    if status in TERMINAL_STATUSES:
        return CancellationDecision.deny(
            f"Cannot cancel {status.value} appointment: already terminal"
        )

    if actor_kind is ActorKind.PATIENT:
        scheduled_moment = slot_start(appointment["date"], appointment["time_slot"], tz)
        if scheduled_moment - now < CANCELLATION_CUTOFF:
            return CancellationDecision.deny(CANCELLATION_CUTOFF_MESSAGE)

    return CancellationDecision.allow()


def refund_payment_status(payment_status: str) -> str:
    """Payment status after a successful cancellation: paid becomes refunded."""
    if payment_status == PaymentStatus.PAID.value:
        return PaymentStatus.REFUNDED.value
    return payment_status


def apply_transition(
    appointment: dict[str, Any],
    target: AppointmentStatus,
    actor: Actor,
    now: datetime,
    tz: ZoneInfo,
    cancel_reason: str | None = None,
) -> dict[str, Any]:
    """
    Validate a status change and compute the column values it writes.

    Cancellation runs the cancellation policy and folds the refund into the
    same set of values, so status and payment are persisted together.

    Args:
        appointment: Current appointment row mapping
        target: Requested status
        actor: Requester
        now: Current aware datetime
        tz: Clinic timezone
        cancel_reason: Optional reason recorded on cancellation

    Returns:
        Column values to write

    Raises:
        PolicyDeniedException: Cancellation refused by policy
        InvalidTransitionException: Edge not in the lifecycle
    """
    current = AppointmentStatus(appointment["status"])

    if target is S.CANCELLED:
        decision = can_cancel(appointment, actor.kind, now, tz)
        if not decision.allowed:
            raise PolicyDeniedException(decision.reason or "Cancellation not allowed")

    ensure_transition(current, target)

    values: dict[str, Any] = {"status": target.value, "updated_at": now}

    if target is S.COMPLETED:
        values["completed_at"] = now

    if target is S.CANCELLED:
        values["cancelled_by"] = actor.id
        values["cancelled_at"] = now
        values["cancel_reason"] = cancel_reason
        values["payment_status"] = refund_payment_status(appointment["payment_status"])

    return values
