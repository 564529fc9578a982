"""Appointment schemas for request/response validation."""

import datetime as dt
import re
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

TIME_SLOT_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")


def clean_symptoms(symptoms: list[str] | None) -> list[str] | None:
    """Trim symptoms and reject empty or overlong entries."""
    if symptoms is None:
        return None
    cleaned = [symptom.strip() for symptom in symptoms]
    for symptom in cleaned:
        if not 1 <= len(symptom) <= 200:
            raise ValueError("Each symptom must be between 1 and 200 characters")
    return cleaned


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    """Appointment type enumeration; informational only."""

    CLINIC_VISIT = "clinic_visit"
    TELEMEDICINE = "telemedicine"
    EMERGENCY = "emergency"
    FOLLOW_UP = "follow_up"
    WALK_IN = "walk-in"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class FollowUp(BaseModel):
    """Follow-up instructions recorded by the doctor."""

    required: bool = False
    date: dt.date | None = None
    reason: str | None = Field(None, max_length=500)


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    patient_id: UUID | None = Field(
        None, description="Required when an administrator books on a patient's behalf"
    )
    doctor_id: UUID
    date: dt.date
    time_slot: str = Field(..., description="Slot start in HH:MM")
    type: AppointmentType
    symptoms: list[str] | None = None
    chief_complaint: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, v: str) -> str:
        """Validate HH:MM format."""
        if not TIME_SLOT_PATTERN.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v

    @field_validator("symptoms")
    @classmethod
    def validate_symptoms(cls, v: list[str] | None) -> list[str] | None:
        """Trim symptoms and bound their length."""
        return clean_symptoms(v)


class AppointmentUpdate(BaseModel):
    """
    Schema for amending an appointment.

    Doctors may set the clinical fields, patients the intake fields while the
    appointment is still scheduled.
    """

    diagnosis: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=1000)
    follow_up: FollowUp | None = None
    symptoms: list[str] | None = None
    chief_complaint: str | None = Field(None, max_length=500)

    @field_validator("symptoms")
    @classmethod
    def validate_symptoms(cls, v: list[str] | None) -> list[str] | None:
        """Trim symptoms and bound their length."""
        return clean_symptoms(v)


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus
    cancel_reason: str | None = Field(None, max_length=500)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    cancel_reason: str | None = Field(None, max_length=500)

    @field_validator("cancel_reason")
    @classmethod
    def strip_reason(cls, v: str | None) -> str | None:
        return v.strip() if v else v


class PaymentInfo(BaseModel):
    """Payment sub-document of an appointment."""

    amount: Decimal | None = None
    status: PaymentStatus
    method: str | None = None
    transaction_id: str | None = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    tenant_id: str
    date: dt.date
    time_slot: str
    status: AppointmentStatus
    type: AppointmentType
    symptoms: list[str] | None = None
    chief_complaint: str | None = None
    diagnosis: str | None = None
    notes: str | None = None
    follow_up: dict[str, Any] | None = None
    payment: PaymentInfo
    cancel_reason: str | None = None
    cancelled_by: UUID | None = None
    cancelled_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def nest_payment(cls, data: Any) -> Any:
        """Fold the flat payment_* columns of a table row into ``payment``."""
        if isinstance(data, dict) and "payment" not in data:
            data = dict(data)
            data["payment"] = {
                "amount": data.pop("payment_amount", None),
                "status": data.pop("payment_status", PaymentStatus.PENDING.value),
                "method": data.pop("payment_method", None),
                "transaction_id": data.pop("payment_transaction_id", None),
            }
        return data


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    items: list[AppointmentResponse]
    total: int
    page: int
    limit: int
    pages: int


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    statuses: list[AppointmentStatus] | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @classmethod
    def parse_status(cls, raw: str | None) -> list[AppointmentStatus] | None:
        """
        Parse a comma-joined status filter.

        ``all`` (or an empty value) means no status filter.

        Raises:
            ValueError: If any member is not a known status
        """
        if not raw:
            return None
        values = [part.strip() for part in raw.split(",") if part.strip()]
        if not values or "all" in values:
            return None
        return [AppointmentStatus(value) for value in values]


class DoctorSummary(BaseModel):
    """Doctor details returned with a slot query."""

    id: UUID
    name: str | None = None
    specialization: str | None = None
    consultation_fee: Decimal | None = None


class AvailableSlotsResponse(BaseModel):
    """Schema for a doctor's slot availability on one date."""

    date: dt.date
    doctor: DoctorSummary
    available_slots: list[str]
    booked_slots: list[str]


class AppointmentStats(BaseModel):
    """Appointment counts by status; all keys are always present."""

    total: int = 0
    scheduled: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0


class BulkStatusOperation(BaseModel):
    """One member of an administrative batch."""

    appointment_id: UUID
    status: AppointmentStatus
    cancel_reason: str | None = Field(None, max_length=500)


class BulkStatusUpdate(BaseModel):
    """Administrative batch of status changes, applied all-or-nothing."""

    operations: list[BulkStatusOperation] = Field(..., min_length=1, max_length=100)


class BulkStatusResult(BaseModel):
    """Outcome of one batch member."""

    appointment_id: UUID
    from_status: AppointmentStatus
    to_status: AppointmentStatus


class BulkStatusResponse(BaseModel):
    """Response for a committed batch."""

    processed: int
    results: list[BulkStatusResult]
