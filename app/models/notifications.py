"""In-app notification records written for appointment events."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    text,
)

from app.models.users import utcnow

metadata = MetaData()

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("tenant_id", String(50), nullable=True),
    Column("notification_type", String(50), nullable=False),
    Column("event", String(50), nullable=False),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("priority", String(20), nullable=False, server_default=text("'medium'")),
    Column("data", JSON, nullable=True),
    Column("is_read", Boolean, nullable=False, server_default=text("false")),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    CheckConstraint(
        "notification_type IN ('appointment', 'prescription', 'lab_report', 'event', "
        "'reminder', 'system', 'alert')",
        name="notifications_type_check",
    ),
    CheckConstraint(
        "priority IN ('low', 'medium', 'high', 'urgent')",
        name="notifications_priority_check",
    ),
    Index("idx_notifications_user_read", "user_id", "is_read", "created_at"),
)
