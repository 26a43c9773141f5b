"""
TravelDiary Backend: In-Memory Entry Repository
================================================

What:  Process-local EntryRepository backed by a dict and an id counter.
How:   One asyncio.Lock guards every mutation (insert, remove,
       update_sharing), so the counter and the map always move together.
       Reads take no lock: they copy `dict.values()` in a single step and
       never await in between, so they see a consistent snapshot.

Limitations:
    - Data is lost on restart. STORAGE_BACKEND=database swaps in the SQL
      implementation behind the same contract.
    - Single process only: each uvicorn worker would hold its own store.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from travel_diary.repositories.base import EntryRepository
from travel_diary.schemas.entry import DiaryEntry, NewEntry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryEntryRepository(EntryRepository):
    """
    Ordered keyed store of DiaryEntry objects.

    Stored entries are never mutated in place; updates replace the stored
    object with a copy, so a reader holding an old reference never observes
    a half-applied change.

    Args:
        clock: Timestamp source for `created_at` (injectable for tests).
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._entries: Dict[int, DiaryEntry] = {}
        self._next_id = 1
        self._clock = clock
        self._lock = asyncio.Lock()

    async def insert(self, entry: NewEntry) -> DiaryEntry:
        async with self._lock:
            entry_id = self._next_id
            self._next_id += 1
            stored = DiaryEntry(
                id=entry_id,
                user_id=entry.user_id,
                caption=entry.caption,
                image_url=entry.image_url,
                location=entry.location,
                screen_info=entry.screen_info,
                created_at=self._clock(),
                share_id=None,
                is_shared=False,
            )
            self._entries[entry_id] = stored

        logger.debug("Stored entry %d for user %s", entry_id, entry.user_id)
        return stored

    async def get(self, entry_id: int) -> Optional[DiaryEntry]:
        return self._entries.get(entry_id)

    async def by_user(self, user_id: str) -> List[DiaryEntry]:
        owned = [entry for entry in list(self._entries.values()) if entry.user_id == user_id]
        # sorted() is stable with reverse=True: equal timestamps keep insertion order
        return sorted(owned, key=lambda entry: entry.created_at, reverse=True)

    async def by_share_token(self, token: str) -> Optional[DiaryEntry]:
        for entry in list(self._entries.values()):
            if entry.is_shared and entry.share_id == token:
                return entry
        return None

    async def share_token_owner(self, token: str) -> Optional[int]:
        for entry in list(self._entries.values()):
            if entry.share_id == token:
                return entry.id
        return None

    async def remove(self, entry_id: int) -> bool:
        async with self._lock:
            removed = self._entries.pop(entry_id, None)
        return removed is not None

    async def update_sharing(
        self,
        entry_id: int,
        is_shared: bool,
        share_id: Optional[str] = None,
    ) -> Optional[DiaryEntry]:
        async with self._lock:
            current = self._entries.get(entry_id)
            if current is None:
                return None
            updated = current.model_copy(
                update={
                    "is_shared": is_shared,
                    "share_id": current.share_id or share_id,
                }
            )
            self._entries[entry_id] = updated
        return updated

    async def count(self) -> int:
        return len(self._entries)
