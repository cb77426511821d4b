"""Database session configuration with connection pooling."""

import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from superadmin.core.config import settings

# Configurable pool settings via environment variables
pool_size = int(os.getenv("DATABASE_POOL_SIZE", "10"))
max_overflow = int(os.getenv("DATABASE_MAX_OVERFLOW", "20"))

engine_options: dict = {"echo": False}
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_options.update(
        pool_size=pool_size,  # Number of connections to maintain
        max_overflow=max_overflow,  # Additional connections allowed beyond pool_size
        pool_timeout=30,  # Seconds to wait before giving up on getting a connection
        pool_recycle=3600,  # Recycle connections after 1 hour (prevents stale connections)
        pool_pre_ping=True,  # Verify connections before using them
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_options)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
