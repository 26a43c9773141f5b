"""
TravelDiary Backend: Repositories Package
==========================================

What:  Storage implementations behind the EntryRepository contract.

Repository Inventory:
    - base.py:    EntryRepository (abstract contract)
    - memory.py:  InMemoryEntryRepository (default)
    - sql.py:     SqlEntryRepository (async SQLAlchemy)
"""

from travel_diary.config import Settings
from travel_diary.repositories.base import EntryRepository
from travel_diary.repositories.memory import InMemoryEntryRepository


def build_repository(settings: Settings) -> EntryRepository:
    """
    Construct the repository selected by STORAGE_BACKEND.

    Called once per application instance by `create_app()`. The SQL
    implementation is imported lazily so the in-memory default needs no
    database driver.
    """
    if settings.storage_backend == "database":
        from travel_diary.database import build_engine
        from travel_diary.repositories.sql import SqlEntryRepository

        return SqlEntryRepository(build_engine(settings.database_url, settings))
    return InMemoryEntryRepository()


__all__ = ["EntryRepository", "InMemoryEntryRepository", "build_repository"]
