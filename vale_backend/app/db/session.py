"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import ResourceNotFoundError


def _engine_options() -> dict:
    options = {"echo": settings.db_echo, "future": True}
    # SQLite pools do not accept sizing arguments
    if not settings.database_url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_options())

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware current time, used as the client-side column default."""
    return datetime.now(timezone.utc)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit everything done inside the block, or roll all of it back.

    Ledger operations that post several entries run inside one of these so no
    partial state is ever committed.
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise


async def get_for_update(db: AsyncSession, model, pk: int, resource: str):
    """
    Load one row with SELECT ... FOR UPDATE, refreshing any cached instance.

    Raises:
        ResourceNotFoundError: no row with that primary key
    """
    result = await db.execute(
        select(model)
        .where(model.id == pk)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    obj = result.scalar_one_or_none()
    if obj is None:
        raise ResourceNotFoundError(resource, pk)
    return obj


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
