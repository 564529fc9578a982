"""Script to initialize the database."""

import asyncio

from app.database import engine
from app.models import metadata


async def init_db() -> None:
    """Create all tables, including the active-slot unique index."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.exec_driver_sql('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

        await conn.run_sync(metadata.create_all)

    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
