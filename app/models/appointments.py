"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    text,
)

from app.models.users import utcnow

# Metadata for all tables
metadata = MetaData()

ACTIVE_SLOT_INDEX = "uq_appointments_active_slot"

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("patient_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("doctor_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("tenant_id", String(50), nullable=False, index=True),
    # Booking key, together with doctor_id
    Column("date", Date, nullable=False),
    Column("time_slot", String(5), nullable=False),
    # Status management
    Column("status", String(20), nullable=False, server_default=text("'scheduled'")),
    Column("type", String(20), nullable=False),
    # Patient intake
    Column("symptoms", JSON, nullable=True),
    Column("chief_complaint", Text, nullable=True),
    # Clinical annotations (doctor only)
    Column("diagnosis", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("follow_up", JSON, nullable=True),
    # Payment
    Column("payment_amount", Numeric(10, 2), nullable=True),
    Column("payment_status", String(20), nullable=False, server_default=text("'pending'")),
    Column("payment_method", String(50), nullable=True),
    Column("payment_transaction_id", String(100), nullable=True),
    # Cancellation
    Column("cancel_reason", Text, nullable=True),
    Column("cancelled_by", Uuid, ForeignKey("users.id"), nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "type IN ('clinic_visit', 'telemedicine', 'emergency', 'follow_up', 'walk-in')",
        name="appointments_type_check",
    ),
    CheckConstraint(
        "payment_status IN ('pending', 'paid', 'refunded')",
        name="appointments_payment_status_check",
    ),
    CheckConstraint(
        "(status = 'cancelled') = (cancelled_at IS NOT NULL)",
        name="appointments_cancelled_fields_check",
    ),
    Index("idx_appointments_patient_date", "patient_id", "date"),
    Index("idx_appointments_doctor_date", "doctor_id", "date"),
    Index("idx_appointments_date_status", "date", "status"),
    # One live appointment per doctor/date/slot; cancelled rows free the slot
    Index(
        ACTIVE_SLOT_INDEX,
        "doctor_id",
        "date",
        "time_slot",
        unique=True,
        postgresql_where=text("status <> 'cancelled'"),
        sqlite_where=text("status <> 'cancelled'"),
    ),
)
