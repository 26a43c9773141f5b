"""
TravelDiary Backend: SQL Entry Repository
==========================================

What:  EntryRepository implemented with async SQLAlchemy.
How:   Each operation opens its own session and transaction. The database
       provides the atomicity the in-memory store gets from its lock:
       autoincrement ids, a UNIQUE share_id, and single-statement
       conditional updates for sharing.
When:  STORAGE_BACKEND=database. Schema comes from Alembic
       (`alembic upgrade head`) or from `create_schema()` when
       DB_AUTO_CREATE_SCHEMA=true.

Error Handling:
    Any SQLAlchemyError is logged with its context and re-raised as
    PersistenceError, which the API turns into a generic 500.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import asc, delete, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from travel_diary.database import build_session_factory, create_schema
from travel_diary.exceptions import PersistenceError
from travel_diary.models.entry import DiaryEntryRecord
from travel_diary.repositories.base import EntryRepository
from travel_diary.schemas.entry import DiaryEntry, NewEntry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_entry(record: DiaryEntryRecord) -> DiaryEntry:
    entry = DiaryEntry.model_validate(record)
    # SQLite hands back naive datetimes even for timezone=True columns.
    if entry.created_at.tzinfo is None:
        entry = entry.model_copy(update={"created_at": entry.created_at.replace(tzinfo=timezone.utc)})
    return entry


class SqlEntryRepository(EntryRepository):
    """
    Durable EntryRepository.

    Args:
        engine: Async engine owned by this repository (disposed by close()).
        clock:  Timestamp source for `created_at`.
    """

    def __init__(self, engine: AsyncEngine, clock: Callable[[], datetime] = _utcnow):
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._clock = clock

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_schema(self) -> None:
        await create_schema(self._engine)

    async def insert(self, entry: NewEntry) -> DiaryEntry:
        record = DiaryEntryRecord(
            user_id=entry.user_id,
            caption=entry.caption,
            image_url=entry.image_url,
            location=entry.location.model_dump() if entry.location else None,
            screen_info=entry.screen_info.model_dump(),
            created_at=self._clock(),
            share_id=None,
            is_shared=False,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(record)
                    await session.flush()
                return _to_entry(record)
        except SQLAlchemyError as e:
            logger.error("Failed to insert entry for user %s: %s", entry.user_id, str(e))
            raise PersistenceError(
                message="Could not save the entry. Please try again.",
                context={"operation": "insert", "error_type": type(e).__name__},
            )

    async def get(self, entry_id: int) -> Optional[DiaryEntry]:
        try:
            async with self._session_factory() as session:
                record = await session.get(DiaryEntryRecord, entry_id)
                return _to_entry(record) if record is not None else None
        except SQLAlchemyError as e:
            logger.error("Failed to fetch entry %d: %s", entry_id, str(e))
            raise PersistenceError(
                message="Could not retrieve the entry. Please try again.",
                context={"operation": "get", "entry_id": entry_id},
            )

    async def by_user(self, user_id: str) -> List[DiaryEntry]:
        query = (
            select(DiaryEntryRecord)
            .where(DiaryEntryRecord.user_id == user_id)
            .order_by(desc(DiaryEntryRecord.created_at), asc(DiaryEntryRecord.id))
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_entry(record) for record in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Failed to list entries for user %s: %s", user_id, str(e), exc_info=True)
            raise PersistenceError(
                message="Could not retrieve entries. Please try again.",
                context={"operation": "by_user", "error_type": type(e).__name__},
            )

    async def by_share_token(self, token: str) -> Optional[DiaryEntry]:
        query = select(DiaryEntryRecord).where(
            DiaryEntryRecord.share_id == token,
            DiaryEntryRecord.is_shared.is_(True),
        )
        return await self._first(query, operation="by_share_token")

    async def share_token_owner(self, token: str) -> Optional[int]:
        query = select(DiaryEntryRecord).where(DiaryEntryRecord.share_id == token)
        entry = await self._first(query, operation="share_token_owner")
        return entry.id if entry is not None else None

    async def remove(self, entry_id: int) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(DiaryEntryRecord).where(DiaryEntryRecord.id == entry_id)
                    )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error("Failed to delete entry %d: %s", entry_id, str(e))
            raise PersistenceError(
                message="Could not delete the entry. Please try again.",
                context={"operation": "remove", "entry_id": entry_id},
            )

    async def update_sharing(
        self,
        entry_id: int,
        is_shared: bool,
        share_id: Optional[str] = None,
    ) -> Optional[DiaryEntry]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    values = {"is_shared": is_shared}
                    if share_id:
                        # An existing token wins, even against a concurrent writer
                        values["share_id"] = func.coalesce(DiaryEntryRecord.share_id, share_id)
                    result = await session.execute(
                        update(DiaryEntryRecord)
                        .where(DiaryEntryRecord.id == entry_id)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        return None
                    record = await session.get(DiaryEntryRecord, entry_id, populate_existing=True)
                if record is None:
                    return None
                return _to_entry(record)
        except SQLAlchemyError as e:
            logger.error("Failed to update sharing for entry %d: %s", entry_id, str(e))
            raise PersistenceError(
                message="Could not update the entry. Please try again.",
                context={"operation": "update_sharing", "entry_id": entry_id},
            )

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(DiaryEntryRecord.id)))
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise PersistenceError(
                message="Could not reach the entry store.",
                context={"operation": "count", "error_type": type(e).__name__},
            )

    async def close(self) -> None:
        await self._engine.dispose()

    async def _first(self, query, operation: str) -> Optional[DiaryEntry]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(query.limit(1))
                record = result.scalar_one_or_none()
                return _to_entry(record) if record is not None else None
        except SQLAlchemyError as e:
            logger.error("Entry lookup failed (%s): %s", operation, str(e))
            raise PersistenceError(
                message="Could not retrieve the entry. Please try again.",
                context={"operation": operation},
            )
