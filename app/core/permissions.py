"""Actor model and the capability table for appointment operations."""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from app.core.exceptions import ForbiddenException


class ActorKind(str, Enum):
    """Roles an authenticated caller can hold."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Action(str, Enum):
    """Operations gated by the capability table."""

    BOOK = "book"
    VIEW_SLOTS = "view_slots"
    LIST = "list"
    VIEW = "view"
    STATS = "stats"
    CONFIRM = "confirm"
    COMPLETE = "complete"
    MARK_NO_SHOW = "mark_no_show"
    CANCEL = "cancel"
    AMEND_CLINICAL = "amend_clinical"
    AMEND_INTAKE = "amend_intake"
    BULK_STATUS = "bulk_status"


@dataclass(frozen=True)
class Actor:
    """The authenticated identity issuing a request."""

    id: UUID
    kind: ActorKind
    tenant_id: str | None

    @property
    def is_super_admin(self) -> bool:
        return self.kind is ActorKind.SUPER_ADMIN

    @classmethod
    def from_user(cls, user: dict[str, Any]) -> "Actor":
        """Build an actor from a directory record."""
        try:
            kind = ActorKind(user["role"])
        except ValueError:
            raise ForbiddenException(f"Unsupported role: {user['role']}")
        return cls(id=user["id"], kind=kind, tenant_id=user.get("tenant_id"))


_EVERYONE = frozenset(ActorKind)
_STAFF = frozenset({ActorKind.DOCTOR, ActorKind.ADMIN, ActorKind.SUPER_ADMIN})
_ADMINS = frozenset({ActorKind.ADMIN, ActorKind.SUPER_ADMIN})

CAPABILITIES: dict[Action, frozenset[ActorKind]] = {
    Action.BOOK: frozenset({ActorKind.PATIENT, ActorKind.ADMIN, ActorKind.SUPER_ADMIN}),
    Action.VIEW_SLOTS: _EVERYONE,
    Action.LIST: _EVERYONE,
    Action.VIEW: _EVERYONE,
    Action.STATS: _EVERYONE,
    Action.CONFIRM: _STAFF,
    Action.COMPLETE: _STAFF,
    Action.MARK_NO_SHOW: _STAFF,
    Action.CANCEL: _EVERYONE,
    Action.AMEND_CLINICAL: frozenset({ActorKind.DOCTOR}),
    Action.AMEND_INTAKE: frozenset({ActorKind.PATIENT}),
    Action.BULK_STATUS: _ADMINS,
}

# Status an appointment moves to -> action needed to move it there
TRANSITION_ACTIONS: dict[str, Action] = {
    "confirmed": Action.CONFIRM,
    "completed": Action.COMPLETE,
    "no_show": Action.MARK_NO_SHOW,
    "cancelled": Action.CANCEL,
}


def can(actor: Actor, action: Action) -> bool:
    """Check the capability table."""
    return actor.kind in CAPABILITIES[action]


def require(actor: Actor, action: Action) -> None:
    """Raise ForbiddenException unless the actor holds the capability."""
    if not can(actor, action):
        raise ForbiddenException(f"Role '{actor.kind.value}' is not allowed to {action.value}")


def ensure_same_tenant(actor: Actor, tenant_id: str | None) -> None:
    """Reject cross-tenant access unless the actor is a super admin."""
    if actor.is_super_admin:
        return
    if actor.tenant_id is None or actor.tenant_id != tenant_id:
        raise ForbiddenException("Cannot access data from other hospitals")


def ensure_can_access(actor: Actor, appointment: dict[str, Any]) -> None:
    """
    Check that an actor may see or act on an appointment.

    Patients and doctors are limited to appointments they take part in,
    admins to their own hospital.
    """
    ensure_same_tenant(actor, appointment["tenant_id"])

    if actor.kind is ActorKind.PATIENT and appointment["patient_id"] != actor.id:
        raise ForbiddenException("Not authorized to access this appointment")
    if actor.kind is ActorKind.DOCTOR and appointment["doctor_id"] != actor.id:
        raise ForbiddenException("Not authorized to access this appointment")
