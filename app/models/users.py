"""Person directory table using SQLAlchemy Core.

Patients, doctors and administrators share one table keyed by role. The
scheduling core only reads it.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    text,
)

metadata = MetaData()


def utcnow() -> datetime:
    """Timezone-aware current time for audit columns."""
    return datetime.now(UTC)


users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("email", Text, nullable=False, unique=True),
    Column("full_name", Text),
    Column("phone", String(20)),
    Column("role", String(20), nullable=False, server_default=text("'patient'")),
    # Hospital the person belongs to; NULL only for super admins
    Column("tenant_id", String(50), nullable=True),
    # Doctor profile
    Column("specialization", String(200)),
    Column("consultation_fee", Numeric(10, 2)),
    # Account state
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    # Audit
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    CheckConstraint(
        "role IN ('patient', 'doctor', 'admin', 'super_admin')",
        name="users_role_check",
    ),
    Index("idx_users_tenant_role", "tenant_id", "role"),
)
