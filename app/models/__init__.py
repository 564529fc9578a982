"""Database models."""

from sqlalchemy import MetaData

from app.models.appointments import appointments
from app.models.appointments import metadata as appointments_metadata
from app.models.notifications import metadata as notifications_metadata
from app.models.notifications import notifications
from app.models.users import metadata as users_metadata
from app.models.users import users

# Combined metadata so foreign keys across modules resolve for create_all
# and Alembic autogenerate.
metadata = MetaData()
for _module_metadata in (users_metadata, appointments_metadata, notifications_metadata):
    for _table in _module_metadata.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "appointments",
    "metadata",
    "notifications",
    "users",
]
