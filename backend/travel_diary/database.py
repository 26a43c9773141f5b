"""
TravelDiary Backend: Database Engine & Session Management
==========================================================

What:  Async SQLAlchemy engine/session factory construction and the
       declarative Base shared by ORM models and Alembic.
How:   Nothing connects at import time. `build_engine()` is called by
       `SqlEntryRepository` only when STORAGE_BACKEND=database, so the default
       in-memory deployment never touches a database driver.
Who:   repositories/sql.py, alembic/env.py, tests.

Connection Pooling Strategy (server databases):
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

    SQLite URLs skip the pool arguments: aiosqlite uses its own pool classes
    and rejects pool sizing.
"""

from typing import Any, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from travel_diary.config import Settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Registers every model on a single metadata object, which Alembic reads
    for --autogenerate and `create_schema()` uses for development databases.
    """
    pass


def build_engine(database_url: str, settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the async engine for `database_url`.

    What:    Applies pool configuration from settings for server databases.
    Returns: An AsyncEngine; no connection is opened until first use.
    """
    kwargs: Dict[str, Any] = {}
    if settings is not None:
        kwargs["echo"] = settings.log_level == "DEBUG"

    if not make_url(database_url).get_backend_name().startswith("sqlite"):
        if settings is not None:
            kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=settings.db_pool_pre_ping,
            )
        kwargs["pool_recycle"] = 3600

    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    expire_on_commit=False: rows stay readable after commit, so repositories
    can convert them to DiaryEntry once the transaction is closed.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet (development / tests)."""
    # Import registers the model on Base.metadata.
    from travel_diary.models import entry  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
