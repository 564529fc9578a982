"""Person directory lookups.

Identity records are owned elsewhere; this service only reads them.
"""

from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.users import users

logger = structlog.get_logger(__name__)

# Fields a doctor lookup needs; cached as JSON
DOCTOR_CACHE_FIELDS = ("id", "role", "tenant_id", "full_name", "specialization", "consultation_fee")


class UserService:
    """Service for directory lookups."""

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _get_doctor_cache_key(doctor_id: UUID) -> str:
        """Generate cache key for a doctor record."""
        return CacheManager.key("directory", "doctor", doctor_id)

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: UUID) -> dict | None:
        """Get a directory record by ID."""
        query = select(users).where(users.c.id == user_id)
        result = await db.execute(query)
        user = result.mappings().first()
        return dict(user) if user else None

    async def get_patient(self, db: AsyncSession, patient_id: UUID) -> dict:
        """
        Resolve a patient.

        Raises:
            NotFoundException: If the ID does not resolve to a patient
        """
        patient = await self.get_user_by_id(db, patient_id)
        if not patient or patient["role"] != "patient":
            raise NotFoundException("Patient not found")
        return patient

    async def get_doctor(self, db: AsyncSession, doctor_id: UUID) -> dict:
        """
        Resolve a doctor, using the cache when available.

        Raises:
            NotFoundException: If the ID does not resolve to a doctor
        """
        cache_key = self._get_doctor_cache_key(doctor_id)

        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached:
                return self._from_cache(cached)

        doctor = await self.get_user_by_id(db, doctor_id)
        if not doctor or doctor["role"] != "doctor":
            raise NotFoundException("Doctor not found")

        if self.cache:
            record = {field: doctor[field] for field in DOCTOR_CACHE_FIELDS}
            self.cache.set_json(cache_key, record, ttl=settings.doctor_cache_ttl)
            logger.debug("doctor_cached", doctor_id=str(doctor_id))

        return doctor

    @staticmethod
    def _from_cache(cached: dict) -> dict:
        """Restore types lost in the JSON round trip."""
        record = dict(cached)
        record["id"] = UUID(record["id"])
        if record.get("consultation_fee") is not None:
            record["consultation_fee"] = Decimal(record["consultation_fee"])
        return record
