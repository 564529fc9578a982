import os
from collections.abc import AsyncGenerator, Callable
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Required settings must exist before the application is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["CACHE_ENABLED"] = "false"
os.environ.setdefault("LOG_FORMAT", "console")

# Load environment variables from .env file
load_dotenv()

from app.config import settings  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.database import get_async_database_url, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import appointments, metadata, users  # noqa: E402

# Test database URL - MUST be different from production.
# Defaults to a private in-memory SQLite database.
TEST_DATABASE_URL = get_async_database_url(os.getenv("TEST_DATABASE_URL", "sqlite://"))

if TEST_DATABASE_URL == get_async_database_url(settings.database_url) and not (
    TEST_DATABASE_URL.startswith("sqlite")
):
    raise RuntimeError("TEST_DATABASE_URL must not point at the application database")

HOSPITAL = "HOSP1"
OTHER_HOSPITAL = "HOSP2"

# name -> (role, tenant_id, extra columns)
SEED_USERS: dict[str, tuple[str, str | None, dict[str, Any]]] = {
    "patient": ("patient", HOSPITAL, {}),
    "other_patient": ("patient", HOSPITAL, {}),
    "doctor": (
        "doctor",
        HOSPITAL,
        {"specialization": "Cardiology", "consultation_fee": Decimal("150.00")},
    ),
    "other_doctor": ("doctor", HOSPITAL, {"specialization": "Dermatology"}),
    "admin": ("admin", HOSPITAL, {}),
    "foreign_patient": ("patient", OTHER_HOSPITAL, {}),
    "foreign_doctor": ("doctor", OTHER_HOSPITAL, {"specialization": "Neurology"}),
    "foreign_admin": ("admin", OTHER_HOSPITAL, {}),
    "super_admin": ("super_admin", None, {}),
    "inactive_patient": ("patient", HOSPITAL, {"is_active": False}),
}


def _make_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a freshly created schema."""
    engine = _make_engine()

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded_users(db_session: AsyncSession) -> dict[str, UUID]:
    """Insert the directory records used across tests."""
    ids: dict[str, UUID] = {}
    for name, (role, tenant_id, extra) in SEED_USERS.items():
        user_id = uuid4()
        await db_session.execute(
            insert(users).values(
                id=user_id,
                email=f"{name}@example.com",
                full_name=name.replace("_", " ").title(),
                role=role,
                tenant_id=tenant_id,
                **{"is_active": True, **extra},
            )
        )
        ids[name] = user_id
    await db_session.commit()
    return ids


@pytest.fixture
def auth_headers(seeded_users: dict[str, UUID]) -> Callable[[str], dict[str, str]]:
    """Build bearer headers for a seeded user by name."""

    def _headers(name: str) -> dict[str, str]:
        token = create_access_token(
            data={"sub": str(seeded_users[name])},
            expires_delta=timedelta(minutes=30),
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def booking_date() -> date:
    """A clinic-local date safely in the future."""
    from datetime import datetime

    return datetime.now(settings.clinic_tz).date() + timedelta(days=7)


@pytest.fixture
def insert_appointment(db_session: AsyncSession, seeded_users: dict[str, UUID]):
    """Insert an appointment row directly, bypassing booking validation."""

    async def _insert(
        day: date,
        time_slot: str,
        patient: str = "patient",
        doctor: str = "doctor",
        **values: Any,
    ) -> UUID:
        appointment_id = uuid4()
        row = {
            "id": appointment_id,
            "patient_id": seeded_users[patient],
            "doctor_id": seeded_users[doctor],
            "tenant_id": SEED_USERS[doctor][1],
            "date": day,
            "time_slot": time_slot,
            "type": "clinic_visit",
            "status": "scheduled",
            "payment_amount": Decimal("150.00"),
            "payment_status": "pending",
        }
        row.update(values)
        await db_session.execute(insert(appointments).values(**row))
        await db_session.commit()
        return appointment_id

    return _insert
