"""Tests for the capability table and hospital isolation."""

from uuid import uuid4

import pytest

from app.core.exceptions import ForbiddenException
from app.core.permissions import (
    CAPABILITIES,
    Action,
    Actor,
    ActorKind,
    can,
    ensure_can_access,
    ensure_same_tenant,
    require,
)


def actor(kind: ActorKind, tenant_id: str | None = "HOSP1") -> Actor:
    return Actor(id=uuid4(), kind=kind, tenant_id=tenant_id)


@pytest.mark.parametrize(
    ("kind", "action", "expected"),
    [
        (ActorKind.PATIENT, Action.BOOK, True),
        (ActorKind.DOCTOR, Action.BOOK, False),
        (ActorKind.ADMIN, Action.BOOK, True),
        (ActorKind.PATIENT, Action.CONFIRM, False),
        (ActorKind.DOCTOR, Action.COMPLETE, True),
        (ActorKind.PATIENT, Action.CANCEL, True),
        (ActorKind.DOCTOR, Action.AMEND_CLINICAL, True),
        (ActorKind.ADMIN, Action.AMEND_CLINICAL, False),
        (ActorKind.PATIENT, Action.AMEND_INTAKE, True),
        (ActorKind.DOCTOR, Action.BULK_STATUS, False),
        (ActorKind.SUPER_ADMIN, Action.BULK_STATUS, True),
    ],
)
def test_capability_table(kind, action, expected):
    assert can(actor(kind), action) is expected


def test_every_action_has_an_entry():
    assert set(CAPABILITIES) == set(Action)


def test_require_raises_forbidden():
    with pytest.raises(ForbiddenException):
        require(actor(ActorKind.PATIENT), Action.BULK_STATUS)


def test_tenant_isolation():
    ensure_same_tenant(actor(ActorKind.ADMIN), "HOSP1")
    ensure_same_tenant(actor(ActorKind.SUPER_ADMIN, None), "HOSP2")

    with pytest.raises(ForbiddenException, match="other hospitals"):
        ensure_same_tenant(actor(ActorKind.ADMIN), "HOSP2")


def test_participants_only():
    patient = actor(ActorKind.PATIENT)
    doctor = actor(ActorKind.DOCTOR)
    appointment = {"tenant_id": "HOSP1", "patient_id": patient.id, "doctor_id": doctor.id}

    ensure_can_access(patient, appointment)
    ensure_can_access(doctor, appointment)
    ensure_can_access(actor(ActorKind.ADMIN), appointment)

    with pytest.raises(ForbiddenException):
        ensure_can_access(actor(ActorKind.PATIENT), appointment)
    with pytest.raises(ForbiddenException):
        ensure_can_access(actor(ActorKind.DOCTOR), appointment)


def test_unknown_role_rejected():
    with pytest.raises(ForbiddenException):
        Actor.from_user({"id": uuid4(), "role": "pharmacist", "tenant_id": "HOSP1"})
